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

"""Pillow helpers shared by the extractor and the optimizer."""

from __future__ import annotations

import base64
import io
from typing import Optional

from PIL import Image

FORMAT_MIME_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def mime_type_for_format(output_format: str) -> str:
    """Maps a format name to its MIME type, defaulting to JPEG like a canvas."""
    return FORMAT_MIME_TYPES.get((output_format or "").lower(), "image/jpeg")


def format_for_mime_type(mime_type: str) -> str:
    for fmt, mime in FORMAT_MIME_TYPES.items():
        if mime == mime_type:
            return fmt
    return "jpeg"


def extension_for_mime_type(mime_type: str) -> str:
    return MIME_EXTENSIONS.get(mime_type, "jpg")


def has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA") or (
        image.mode == "P" and "transparency" in image.info
    )


def flatten_alpha(image: Image.Image, background=(255, 255, 255)) -> Image.Image:
    """Composites transparent pixels onto a solid background and returns RGB."""
    if not has_alpha(image):
        return image if image.mode == "RGB" else image.convert("RGB")
    rgba = image.convert("RGBA")
    canvas = Image.new("RGB", rgba.size, background)
    canvas.paste(rgba, mask=rgba.getchannel("A"))
    return canvas


def encode_image(
    image: Image.Image,
    output_format: str = "jpeg",
    quality: float = 0.92,
    *,
    progressive: bool = False,
) -> bytes:
    """
    Encodes a Pillow image the way `canvas.toBlob(type, quality)` would.

    Args:
        image: The image to encode.
        output_format: One of "jpeg", "png" or "webp".
        quality: Encoder quality in 0..1, ignored for PNG.
        progressive: Emit a progressive JPEG.

    Returns:
        bytes: The encoded image.
    """
    fmt = format_for_mime_type(mime_type_for_format(output_format))
    pil_quality = max(1, min(100, int(round(quality * 100))))
    out = io.BytesIO()
    if fmt == "jpeg":
        flatten_alpha(image).save(
            out,
            format="JPEG",
            quality=pil_quality,
            optimize=True,
            progressive=progressive,
        )
    elif fmt == "webp":
        image.save(out, format="WEBP", quality=pil_quality)
    else:
        if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
            image = image.convert("RGBA")
        image.save(out, format="PNG", optimize=True)
    return out.getvalue()


def to_data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def open_image(data: bytes, *, formats: Optional[list[str]] = None) -> Image.Image:
    """Opens and fully decodes image bytes so the buffer can be dropped."""
    image = Image.open(io.BytesIO(data), formats=formats)
    image.load()
    return image
