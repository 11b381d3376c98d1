import unittest

from pydantic import ValidationError

from backend.config import Settings


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = Settings(use_in_memory_backends=True)
        self.assertEqual(settings.api_prefix, "/api")
        self.assertLessEqual(settings.crop_min_zoom, settings.crop_max_zoom)

    def test_zoom_bounds_must_be_ordered(self):
        with self.assertRaises(ValidationError):
            Settings(crop_min_zoom=2.0, crop_max_zoom=1.0)

    def test_equal_zoom_bounds_allowed(self):
        settings = Settings(crop_min_zoom=1.0, crop_max_zoom=1.0)
        self.assertEqual(settings.crop_max_zoom, 1.0)


if __name__ == "__main__":
    unittest.main()
