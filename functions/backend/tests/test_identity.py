import unittest
from unittest.mock import patch

from firebase_admin import auth

from backend.config import Settings
from backend.dependencies import get_current_user_id, reset_dependencies
from backend.identity import FirebaseIdentityProvider, InMemoryIdentityProvider


class InMemoryIdentityProviderTests(unittest.TestCase):
    def test_token_is_user_id(self):
        provider = InMemoryIdentityProvider()
        self.assertEqual(provider.get_current_user_id("u1"), "u1")
        self.assertIsNone(provider.get_current_user_id(""))

    def test_update_profile_reference(self):
        provider = InMemoryIdentityProvider(users={"u1": {}})
        provider.update_profile_reference("u1", "https://example.test/p.jpg")
        self.assertEqual(provider.users["u1"]["photo_url"], "https://example.test/p.jpg")
        self.assertFalse(provider.has_user("u2"))
        with self.assertRaises(KeyError):
            provider.update_profile_reference("u2", "x")


class FirebaseIdentityProviderTests(unittest.TestCase):
    @patch("backend.identity.auth.verify_id_token")
    def test_verifies_token(self, mock_verify):
        mock_verify.return_value = {"uid": "u1"}
        provider = FirebaseIdentityProvider(app="app")
        self.assertEqual(provider.get_current_user_id("token"), "u1")
        mock_verify.assert_called_once_with("token", app="app")

    @patch("backend.identity.auth.verify_id_token")
    def test_rejects_invalid_token(self, mock_verify):
        mock_verify.side_effect = ValueError("bad token")
        provider = FirebaseIdentityProvider()
        self.assertIsNone(provider.get_current_user_id("token"))

    @patch("backend.identity.auth.get_user")
    def test_has_user(self, mock_get_user):
        provider = FirebaseIdentityProvider()
        self.assertTrue(provider.has_user("u1"))
        mock_get_user.side_effect = auth.UserNotFoundError("missing")
        self.assertFalse(provider.has_user("u2"))

    @patch("backend.identity.auth.update_user")
    def test_update_profile_reference(self, mock_update):
        FirebaseIdentityProvider(app="app").update_profile_reference("u1", "https://x")
        mock_update.assert_called_once_with("u1", photo_url="https://x", app="app")


class CurrentUserDependencyTests(unittest.TestCase):
    def setUp(self):
        settings_patch = patch(
            "backend.dependencies.get_settings",
            return_value=Settings(use_in_memory_backends=True),
        )
        settings_patch.start()
        self.addCleanup(settings_patch.stop)
        reset_dependencies()

    def tearDown(self):
        reset_dependencies()

    def test_bearer_header(self):
        self.assertEqual(get_current_user_id("Bearer u1"), "u1")
        self.assertEqual(get_current_user_id("bearer  u1 "), "u1")

    def test_missing_or_malformed_header(self):
        self.assertIsNone(get_current_user_id(None))
        self.assertIsNone(get_current_user_id("Basic abc"))
        self.assertIsNone(get_current_user_id("Bearer"))

    @patch("backend.dependencies.get_settings")
    def test_token_rejected_without_identity_provider(self, mock_settings):
        mock_settings.return_value = Settings(database_url="sqlite://")
        reset_dependencies()
        with self.assertLogs("backend.dependencies", level="WARNING"):
            self.assertIsNone(get_current_user_id("Bearer u1"))


if __name__ == "__main__":
    unittest.main()
