import io
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from fastapi.testclient import TestClient
from PIL import Image

from backend.app import create_app
from backend.config import Settings
from backend.dependencies import (
    get_document_store,
    get_identity_provider,
    get_object_store,
    reset_dependencies,
)


def _jpeg(width: int = 400, height: int = 300) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (width, height), (90, 160, 220)).save(out, format="JPEG")
    return out.getvalue()


def _auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {user_id}"}


class PhotoApiTests(unittest.TestCase):
    def setUp(self):
        settings_patch = patch(
            "backend.dependencies.get_settings",
            return_value=Settings(use_in_memory_backends=True),
        )
        settings_patch.start()
        self.addCleanup(settings_patch.stop)
        reset_dependencies()
        self.client = TestClient(create_app())
        self.documents = get_document_store()
        self.documents.set_entity("users", "u1", {"email": "owner@example.test"})
        self.documents.set_entity("users", "u2", {"email": "other@example.test"})
        self.documents.set_entity("families", "f1", {"name": "Doe", "ownerId": "u1"})
        self.documents.set_entity(
            "familyMembers", "m1", {"familyId": "f1", "firstName": "Kid"}
        )
        get_identity_provider().users["u1"] = {}

    def tearDown(self):
        reset_dependencies()

    def _open(self, user_id="u1", entity_type="user_profile", entity_id="u1", **file_kwargs):
        filename = file_kwargs.get("filename", "photo.jpg")
        data = file_kwargs.get("data", _jpeg())
        content_type = file_kwargs.get("content_type", "image/jpeg")
        return self.client.post(
            "/api/photo-sessions",
            files={"file": (filename, data, content_type)},
            data={"entity_type": entity_type, "entity_id": entity_id},
            headers=_auth(user_id),
        )

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "active_sessions": 0})

    def test_open_session_returns_initial_selection(self):
        response = self._open()
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["state"], "READY")
        self.assertEqual(payload["stage"], "EDITING")
        self.assertEqual((payload["image_width"], payload["image_height"]), (400, 300))
        self.assertEqual(payload["selection"]["unit"], "%")
        self.assertAlmostEqual(payload["selection"]["height"], 90.0)
        self.assertEqual(payload["pixel_selection"]["width"], 270.0)
        self.assertTrue(payload["preview_url"].startswith("data:image/jpeg;base64,"))
        self.assertTrue(payload["can_confirm"])

    def test_edit_and_confirm(self):
        session_id = self._open().json()["session_id"]

        response = self.client.put(
            f"/api/photo-sessions/{session_id}/selection",
            json={"x": 0, "y": 0, "width": 50, "height": 50, "unit": "%"},
            headers=_auth("u1"),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["state"], "EDITING")
        self.assertEqual(response.json()["pixel_selection"]["width"], 200.0)
        self.assertEqual(response.json()["pixel_selection"]["height"], 200.0)

        response = self.client.put(
            f"/api/photo-sessions/{session_id}/zoom",
            json={"scale": 2},
            headers=_auth("u1"),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["zoom"], 2.0)
        self.assertEqual(response.json()["pixel_selection"]["width"], 100.0)

        response = self.client.put(
            f"/api/photo-sessions/{session_id}/position",
            json={"x": 0, "y": 0, "unit": "px"},
            headers=_auth("u1"),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["pixel_selection"]["x"], 0.0)

        response = self.client.post(
            f"/api/photo-sessions/{session_id}/confirm", headers=_auth("u1")
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual((payload["width"], payload["height"]), (100, 100))
        self.assertEqual(payload["mime_type"], "image/jpeg")
        self.assertIn("/u1/", payload["url"])
        self.assertTrue(payload["identity_synced"])
        self.assertEqual(
            self.documents.get_entity("users", "u1")["profilePicture"], payload["url"]
        )
        self.assertIn(payload["path"], get_object_store().stored_objects)

        response = self.client.get(
            f"/api/photo-sessions/{session_id}", headers=_auth("u1")
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"]["kind"], "SessionNotFound")

    def test_selection_drawn_on_scaled_preview(self):
        session_id = self._open().json()["session_id"]
        response = self.client.put(
            f"/api/photo-sessions/{session_id}/selection",
            json={
                "x": 10,
                "y": 10,
                "width": 100,
                "height": 100,
                "unit": "px",
                "displayed_width": 200,
                "displayed_height": 150,
            },
            headers=_auth("u1"),
        )
        self.assertEqual(response.status_code, 200)
        selection = response.json()["pixel_selection"]
        self.assertEqual(
            (selection["x"], selection["y"], selection["width"], selection["height"]),
            (20.0, 20.0, 200.0, 200.0),
        )

    def test_requires_authentication(self):
        response = self.client.post(
            "/api/photo-sessions",
            files={"file": ("photo.jpg", _jpeg(), "image/jpeg")},
            data={"entity_type": "user_profile", "entity_id": "u1"},
        )
        self.assertEqual(response.status_code, 401)

    def test_cannot_change_another_users_photo(self):
        response = self._open(user_id="u2", entity_id="u1")
        self.assertEqual(response.status_code, 403)

    def test_family_owner_can_change_member_photo(self):
        response = self._open(entity_type="family_member", entity_id="m1")
        self.assertEqual(response.status_code, 201)
        session_id = response.json()["session_id"]
        response = self.client.post(
            f"/api/photo-sessions/{session_id}/confirm", headers=_auth("u1")
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["path"].startswith("family_members/f1/m1/"))
        self.assertFalse(response.json()["identity_synced"])

    def test_non_owner_cannot_change_member_photo(self):
        response = self._open(user_id="u2", entity_type="family_member", entity_id="m1")
        self.assertEqual(response.status_code, 403)

    def test_unknown_entity_type(self):
        response = self._open(entity_type="pet")
        self.assertEqual(response.status_code, 422)

    def test_unknown_entity(self):
        response = self._open(entity_type="family_member", entity_id="missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"]["kind"], "EntityNotFound")

    def test_non_image_is_rejected(self):
        response = self._open(
            filename="scan.pdf", data=b"%PDF-1.4", content_type="application/pdf"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"]["kind"], "InvalidFormat")
        self.assertNotIn("profilePicture", self.documents.get_entity("users", "u1"))

        response = self.client.get(
            "/api/notifications", params={"topic": "status"}, headers=_auth("u1")
        )
        self.assertEqual(response.status_code, 200)
        notifications = response.json()["notifications"]
        self.assertEqual(notifications[-1]["kind"], "error")
        self.assertEqual(notifications[-1]["title"], "Invalid format")

    def test_corrupt_image(self):
        response = self._open(data=b"definitely not a jpeg")
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["kind"], "DecodeFailed")

    def test_upload_limit(self):
        with patch("backend.routes.get_settings") as mock_settings:
            mock_settings.return_value = SimpleNamespace(max_upload_bytes=10)
            response = self._open()
        self.assertEqual(response.status_code, 413)

    def test_second_session_is_busy(self):
        self.assertEqual(self._open().status_code, 201)
        response = self._open()
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["detail"]["kind"], "SessionBusy")

    def test_session_belongs_to_its_owner(self):
        session_id = self._open().json()["session_id"]
        response = self.client.get(
            f"/api/photo-sessions/{session_id}", headers=_auth("u2")
        )
        self.assertEqual(response.status_code, 403)

    def test_cancel(self):
        session_id = self._open().json()["session_id"]
        response = self.client.delete(
            f"/api/photo-sessions/{session_id}", headers=_auth("u1")
        )
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get("/api/health").json()["active_sessions"], 0)
        # The entity is free again.
        self.assertEqual(self._open().status_code, 201)

    def test_direct_upload(self):
        response = self.client.post(
            "/api/photos/user_profile/u1",
            files={"file": ("photo.jpg", _jpeg(1024, 768), "image/jpeg")},
            headers=_auth("u1"),
        )
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual((payload["width"], payload["height"]), (512, 384))
        self.assertEqual(
            self.documents.get_entity("users", "u1")["profilePicture"], payload["url"]
        )

    def test_notifications_topics(self):
        self._open()
        response = self.client.get(
            "/api/notifications", params={"topic": "photoStatus"}, headers=_auth("u1")
        )
        titles = [n["title"] for n in response.json()["notifications"]]
        self.assertEqual(titles, ["Loading image", "Image ready to crop"])

        response = self.client.get(
            "/api/notifications", params={"topic": "bogus"}, headers=_auth("u1")
        )
        self.assertEqual(response.status_code, 422)

    def test_notifications_require_authentication(self):
        self._open(data=b"definitely not a jpeg")
        response = self.client.get("/api/notifications")
        self.assertEqual(response.status_code, 401)

    def test_notifications_are_private_to_their_user(self):
        response = self._open(data=b"definitely not a jpeg")
        self.assertEqual(response.status_code, 422)

        response = self.client.get("/api/notifications", headers=_auth("u2"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["notifications"], [])

        response = self.client.get(
            "/api/notifications", params={"topic": "status"}, headers=_auth("u1")
        )
        notifications = response.json()["notifications"]
        self.assertEqual(notifications[-1]["title"], "Image could not be loaded")
        self.assertTrue(notifications[-1]["detail"])

    def test_upload_failure_is_not_shown_to_other_users(self):
        with patch.object(
            get_object_store(), "put_object", side_effect=OSError("bucket offline")
        ):
            response = self.client.post(
                "/api/photos/user_profile/u1",
                files={"file": ("photo.jpg", _jpeg(), "image/jpeg")},
                headers=_auth("u1"),
            )
        self.assertEqual(response.status_code, 502)

        response = self.client.get("/api/notifications", headers=_auth("u2"))
        self.assertEqual(response.json()["notifications"], [])
        response = self.client.get("/api/notifications", headers=_auth("u1"))
        titles = [n["title"] for n in response.json()["notifications"]]
        self.assertIn("Upload failed", titles)


class SqlDeploymentAuthTests(unittest.TestCase):
    """A SQL-backed deployment with no token verifier configured."""

    def setUp(self):
        settings_patch = patch(
            "backend.dependencies.get_settings",
            return_value=Settings(database_url="sqlite+pysqlite:///:memory:"),
        )
        settings_patch.start()
        self.addCleanup(settings_patch.stop)
        reset_dependencies()
        self.client = TestClient(create_app())

    def tearDown(self):
        reset_dependencies()

    def test_no_identity_provider_without_in_memory_backends(self):
        with self.assertLogs("backend.dependencies", level="WARNING"):
            self.assertIsNone(get_identity_provider())

    def test_user_id_as_token_is_rejected(self):
        response = self.client.post(
            "/api/photos/user_profile/victim",
            files={"file": ("photo.jpg", _jpeg(), "image/jpeg")},
            headers=_auth("victim"),
        )
        self.assertEqual(response.status_code, 401)

        response = self.client.get("/api/notifications", headers=_auth("victim"))
        self.assertEqual(response.status_code, 401)


if __name__ == "__main__":
    unittest.main()
