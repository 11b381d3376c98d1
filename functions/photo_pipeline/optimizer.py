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

"""
Resizes and re-encodes photos before upload.

Optimization is best-effort: if anything goes wrong the input blob is passed
through unchanged so a user can always set a photo.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from PIL import Image

from photo_pipeline import raster
from photo_pipeline.errors import OptimizationFailedError
from photo_pipeline.types import ExtractedBlob, OptimizedAsset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptimizerConfig:
    max_width: int = 1200
    max_height: int = 1200
    quality: float = 0.85
    output_format: str = "jpeg"
    progressive: bool = True

    def __post_init__(self):
        if self.max_width <= 0 or self.max_height <= 0:
            raise ValueError("Optimizer bounds must be positive")
        if not 0.0 <= self.quality <= 1.0:
            raise ValueError(f"Quality must be within 0..1, got {self.quality}")
        if self.output_format.lower() not in raster.FORMAT_MIME_TYPES:
            raise ValueError(f"Unsupported output format {self.output_format}")


AVATAR_OPTIMIZER_CONFIG = OptimizerConfig(max_width=512, max_height=512, quality=0.85)


def compute_target_size(
    width: int, height: int, max_width: int, max_height: int
) -> tuple[int, int]:
    """Scales (width, height) down to fit the bounds, never up."""
    if width <= max_width and height <= max_height:
        return width, height
    ratio = min(max_width / width, max_height / height)
    return max(1, int(width * ratio)), max(1, int(height * ratio))


def _render(blob: ExtractedBlob, config: OptimizerConfig) -> OptimizedAsset:
    try:
        image = raster.open_image(blob.data)
    except Exception as e:
        raise OptimizationFailedError("Could not decode the blob to optimize") from e

    try:
        width, height = compute_target_size(
            image.width, image.height, config.max_width, config.max_height
        )
        if (width, height) != image.size:
            image = image.resize((width, height), Image.Resampling.LANCZOS)
        data = raster.encode_image(
            image,
            config.output_format,
            config.quality,
            progressive=config.progressive,
        )
    except Exception as e:
        raise OptimizationFailedError(f"Re-encoding to {config.output_format} failed") from e
    finally:
        image.close()

    if not data:
        raise OptimizationFailedError("Encoder produced an empty buffer")

    mime_type = raster.mime_type_for_format(config.output_format)
    return OptimizedAsset(
        data=data,
        mime_type=mime_type,
        width=width,
        height=height,
        preview_url=raster.to_data_url(data, mime_type),
    )


def passthrough_asset(blob: ExtractedBlob) -> OptimizedAsset:
    """Wraps an unoptimized blob with a fresh preview reference."""
    return OptimizedAsset(
        data=blob.data,
        mime_type=blob.mime_type,
        width=blob.width,
        height=blob.height,
        preview_url=raster.to_data_url(blob.data, blob.mime_type),
        optimized=False,
    )


def optimize_image(
    blob: ExtractedBlob, config: OptimizerConfig = OptimizerConfig()
) -> OptimizedAsset:
    """
    Resizes the blob to fit `config` bounds and re-encodes it.

    Never raises: on failure the original blob is returned with
    `optimized=False` and the failure is logged.
    """
    try:
        asset = _render(blob, config)
    except OptimizationFailedError as e:
        logger.warning(
            "Image optimization failed, using original %sx%s blob: %s",
            blob.width,
            blob.height,
            e,
        )
        return passthrough_asset(blob)

    if blob.size:
        reduction = (blob.size - asset.size) / blob.size * 100
        logger.debug(
            "Image optimization: %s -> %s bytes (%.2f%% reduction)",
            blob.size,
            asset.size,
            reduction,
        )
    return asset
