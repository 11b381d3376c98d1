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

from photo_pipeline.optimizer import (
    AVATAR_OPTIMIZER_CONFIG,
    OptimizerConfig,
    compute_target_size,
    optimize_image,
)
from photo_pipeline.types import ExtractedBlob


def _blob(width: int, height: int, *, mode: str = "RGB", fmt: str = "JPEG") -> ExtractedBlob:
    out = io.BytesIO()
    color = (10, 120, 200, 128) if mode == "RGBA" else (10, 120, 200)
    Image.new(mode, (width, height), color).save(out, format=fmt)
    return ExtractedBlob(
        data=out.getvalue(),
        mime_type=f"image/{fmt.lower()}",
        width=width,
        height=height,
    )


def _size_of(data: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(data)) as image:
        return image.size


class ComputeTargetSizeTest(unittest.TestCase):

    def test_never_upscales(self):
        self.assertEqual(compute_target_size(100, 50, 512, 512), (100, 50))

    def test_fits_both_bounds(self):
        self.assertEqual(compute_target_size(2000, 1000, 512, 512), (512, 256))
        self.assertEqual(compute_target_size(1000, 2000, 512, 512), (256, 512))

    def test_keeps_at_least_one_pixel(self):
        self.assertEqual(compute_target_size(10000, 1, 100, 100), (100, 1))


class OptimizerTest(unittest.TestCase):

    def test_resizes_to_avatar_bounds(self):
        asset = optimize_image(_blob(2000, 1000), AVATAR_OPTIMIZER_CONFIG)
        self.assertTrue(asset.optimized)
        self.assertEqual((asset.width, asset.height), (512, 256))
        self.assertEqual(_size_of(asset.data), (512, 256))
        self.assertEqual(asset.mime_type, "image/jpeg")
        self.assertTrue(asset.preview_url.startswith("data:image/jpeg;base64,"))

    def test_small_image_is_reencoded_not_resized(self):
        asset = optimize_image(_blob(100, 50))
        self.assertTrue(asset.optimized)
        self.assertEqual((asset.width, asset.height), (100, 50))

    def test_transparent_png_becomes_jpeg(self):
        asset = optimize_image(_blob(64, 64, mode="RGBA", fmt="PNG"))
        self.assertEqual(asset.mime_type, "image/jpeg")
        with Image.open(io.BytesIO(asset.data)) as image:
            self.assertEqual(image.mode, "RGB")

    def test_webp_output(self):
        config = OptimizerConfig(max_width=32, max_height=32, output_format="webp")
        asset = optimize_image(_blob(64, 64), config)
        self.assertEqual(asset.mime_type, "image/webp")
        self.assertEqual(_size_of(asset.data), (32, 32))

    def test_failure_falls_back_to_original(self):
        blob = ExtractedBlob(
            data=b"not an image", mime_type="image/jpeg", width=10, height=10
        )
        with self.assertLogs("photo_pipeline.optimizer", level="WARNING"):
            asset = optimize_image(blob)
        self.assertFalse(asset.optimized)
        self.assertEqual(asset.data, blob.data)
        self.assertEqual(asset.mime_type, "image/jpeg")
        self.assertEqual((asset.width, asset.height), (10, 10))
        self.assertTrue(asset.preview_url.startswith("data:image/jpeg;base64,"))

    def test_invalid_config(self):
        with self.assertRaises(ValueError):
            OptimizerConfig(quality=1.5)
        with self.assertRaises(ValueError):
            OptimizerConfig(output_format="gif")
        with self.assertRaises(ValueError):
            OptimizerConfig(max_width=0)


if __name__ == "__main__":
    unittest.main()
