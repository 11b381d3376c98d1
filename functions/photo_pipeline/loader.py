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

import io
import logging
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from photo_pipeline.errors import DecodeFailedError, InvalidFormatError
from photo_pipeline.types import SourceImage
from shared.constants import ACCEPTED_MIME_PREFIX

logger = logging.getLogger(__name__)


def is_image_mime_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.lower().startswith(ACCEPTED_MIME_PREFIX)


def load_source_image(
    data: bytes,
    *,
    content_type: Optional[str],
    filename: Optional[str] = None,
) -> SourceImage:
    """
    Decodes a user-selected file into a SourceImage.

    The MIME type is checked before any decoding happens, so a rejected file
    never allocates pixels. EXIF orientation is applied so the reported size
    matches what the user sees.

    Args:
        data: Raw file bytes.
        content_type: MIME type reported by the file picker.
        filename: Original file name, kept for logging.

    Returns:
        SourceImage: The decoded image. The caller owns it and must release it.

    Raises:
        InvalidFormatError: If the MIME type is not an image type.
        DecodeFailedError: If the bytes cannot be decoded as an image.
    """
    if not is_image_mime_type(content_type):
        raise InvalidFormatError(
            f"Expected an image file, got {content_type or 'unknown type'}"
            + (f" ({filename})" if filename else "")
        )
    if not data:
        raise DecodeFailedError("Selected file is empty")

    try:
        with Image.open(io.BytesIO(data)) as opened:
            opened.load()
            # exif_transpose always returns a new image detached from `opened`.
            image = ImageOps.exif_transpose(opened)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        logger.warning("Could not decode %s (%s): %s", filename, content_type, e)
        raise DecodeFailedError(f"Could not read image {filename or ''}".strip()) from e

    logger.debug(
        "Loaded %s as %sx%s %s", filename, image.width, image.height, image.mode
    )
    return SourceImage.from_image(image, content_type.lower(), filename)
