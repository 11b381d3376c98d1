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

from __future__ import annotations

import logging
from typing import Optional

from PIL import Image

from photo_pipeline import raster
from photo_pipeline.errors import ExtractionFailedError
from photo_pipeline.types import ExtractedBlob, PixelCrop, SourceImage

logger = logging.getLogger(__name__)

# Quality of the intermediate crop, before the optimizer re-encodes it.
EXTRACTION_QUALITY = 0.95


def _source_box(
    crop: PixelCrop,
    source: SourceImage,
    displayed_size: Optional[tuple[float, float]],
) -> tuple[float, float, float, float]:
    """Maps the crop onto native source pixels and clips it to the image."""
    scale_x = scale_y = 1.0
    if displayed_size is not None:
        displayed_width, displayed_height = displayed_size
        if displayed_width <= 0 or displayed_height <= 0:
            raise ExtractionFailedError("Displayed image size must be positive")
        scale_x = source.width / displayed_width
        scale_y = source.height / displayed_height

    left = max(0.0, crop.x * scale_x)
    top = max(0.0, crop.y * scale_y)
    right = min(float(source.width), (crop.x + crop.width) * scale_x)
    bottom = min(float(source.height), (crop.y + crop.height) * scale_y)
    if right <= left or bottom <= top:
        raise ExtractionFailedError(f"Crop {crop} lies outside the image")
    return left, top, right, bottom


def _integer_box(
    box: tuple[float, float, float, float], source: SourceImage
) -> tuple[int, int, int, int]:
    left = min(int(round(box[0])), source.width - 1)
    top = min(int(round(box[1])), source.height - 1)
    right = min(max(int(round(box[2])), left + 1), source.width)
    bottom = min(max(int(round(box[3])), top + 1), source.height)
    return left, top, right, bottom


def extract_crop(
    source: SourceImage,
    crop: PixelCrop,
    *,
    displayed_size: Optional[tuple[float, float]] = None,
    mime_type: str = "image/jpeg",
    quality: float = EXTRACTION_QUALITY,
) -> ExtractedBlob:
    """
    Rasterizes exactly the selected rectangle of the source image.

    The output has the crop's width and height. When the crop was measured
    on a scaled preview, `displayed_size` gives the preview size and the
    rectangle is mapped back to native pixels first; the residual scale is
    handled by the resampler.

    Args:
        source: The loaded image. Must not be released.
        crop: The selection, in native pixels or in displayed pixels.
        displayed_size: (width, height) of the preview the crop was drawn on.
        mime_type: Output MIME type.
        quality: Encoder quality in 0..1.

    Returns:
        ExtractedBlob: The encoded crop.

    Raises:
        ExtractionFailedError: On a degenerate crop, a released source or any
            rasterization failure.
    """
    if crop.is_degenerate:
        raise ExtractionFailedError(
            f"Crop must have a positive size, got {crop.width}x{crop.height}"
        )
    if source.released:
        raise ExtractionFailedError("Source image was released before extraction")

    box = _source_box(crop, source, displayed_size)
    try:
        region = source.image.crop(_integer_box(box, source))
        if region.size != (crop.width, crop.height):
            region = region.resize(
                (crop.width, crop.height), Image.Resampling.LANCZOS
            )
        data = raster.encode_image(
            region, raster.format_for_mime_type(mime_type), quality
        )
    except (OSError, ValueError, MemoryError) as e:
        logger.exception("Crop extraction failed for %s", crop)
        raise ExtractionFailedError("Could not rasterize the crop") from e

    return ExtractedBlob(
        data=data,
        mime_type=raster.mime_type_for_format(raster.format_for_mime_type(mime_type)),
        width=crop.width,
        height=crop.height,
    )
