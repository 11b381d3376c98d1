# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import io
import unittest

from PIL import Image

from photo_pipeline.errors import DecodeFailedError, InvalidFormatError
from photo_pipeline.loader import is_image_mime_type, load_source_image


def _encode(image: Image.Image, fmt: str = "PNG", **kwargs) -> bytes:
    out = io.BytesIO()
    image.save(out, format=fmt, **kwargs)
    return out.getvalue()


class LoaderTest(unittest.TestCase):

    def test_is_image_mime_type(self):
        self.assertTrue(is_image_mime_type("image/png"))
        self.assertTrue(is_image_mime_type("IMAGE/JPEG"))
        self.assertFalse(is_image_mime_type("application/pdf"))
        self.assertFalse(is_image_mime_type(""))
        self.assertFalse(is_image_mime_type(None))

    def test_load_png(self):
        data = _encode(Image.new("RGB", (40, 30), "red"))
        source = load_source_image(data, content_type="image/png", filename="a.png")
        self.assertEqual((source.width, source.height), (40, 30))
        self.assertEqual(source.mime_type, "image/png")
        self.assertEqual(source.filename, "a.png")
        self.assertFalse(source.released)
        source.release()
        self.assertTrue(source.released)
        # Dimensions stay readable after release.
        self.assertEqual(source.width, 40)

    def test_rejects_non_image_before_decoding(self):
        data = _encode(Image.new("RGB", (10, 10)))
        with self.assertRaises(InvalidFormatError) as ctx:
            load_source_image(data, content_type="text/plain", filename="notes.txt")
        self.assertIn("notes.txt", str(ctx.exception))
        self.assertEqual(ctx.exception.kind, "InvalidFormat")

    def test_corrupt_bytes_raise_decode_failed(self):
        with self.assertRaises(DecodeFailedError):
            load_source_image(b"\x89PNG garbage", content_type="image/png")

    def test_empty_file_raises_decode_failed(self):
        with self.assertRaises(DecodeFailedError):
            load_source_image(b"", content_type="image/jpeg")

    def test_exif_orientation_is_applied(self):
        image = Image.new("RGB", (60, 20), "blue")
        exif = Image.Exif()
        exif[0x0112] = 6  # Rotated 90 degrees clockwise.
        data = _encode(image, "JPEG", exif=exif.tobytes())

        source = load_source_image(data, content_type="image/jpeg")

        self.assertEqual((source.width, source.height), (20, 60))
        source.release()


if __name__ == "__main__":
    unittest.main()
