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

from dataclasses import dataclass, field, replace
from typing import Optional

from PIL import Image

from photo_pipeline import raster
from shared.constants import (
    FAMILY_MEMBERS_COLLECTION,
    FAMILY_MEMBERS_PREFIX,
    PROFILE_PICTURES_PREFIX,
    USERS_COLLECTION,
)
from shared.types import EntityType

PIXEL_UNIT = "px"
PERCENT_UNIT = "%"


@dataclass
class SourceImage:
    """
    A decoded user-supplied image, held for the duration of one crop session.

    The decoded pixels are a transient resource: callers must `release()` the
    image (or use it as a context manager) when the session ends. The
    dimensions remain readable after release.
    """

    width: int
    height: int
    mime_type: str
    filename: Optional[str] = None
    _image: Optional[Image.Image] = field(default=None, repr=False)

    @classmethod
    def from_image(
        cls, image: Image.Image, mime_type: str, filename: Optional[str] = None
    ) -> "SourceImage":
        return cls(
            width=image.width,
            height=image.height,
            mime_type=mime_type,
            filename=filename,
            _image=image,
        )

    @property
    def released(self) -> bool:
        return self._image is None

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            raise ValueError("SourceImage has been released")
        return self._image

    def preview_data_url(self, max_size: int = 1024) -> str:
        """Returns a downscaled data URL suitable for displaying in the editor."""
        preview = self.image.copy()
        preview.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
        if raster.has_alpha(preview):
            return raster.to_data_url(
                raster.encode_image(preview, "png"), "image/png"
            )
        return raster.to_data_url(
            raster.encode_image(preview, "jpeg", 0.9), "image/jpeg"
        )

    def release(self) -> None:
        if self._image is not None:
            self._image.close()
            self._image = None

    def __enter__(self) -> "SourceImage":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


@dataclass(frozen=True)
class PixelCrop:
    """An integer rectangle in image pixels."""

    x: int
    y: int
    width: int
    height: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    @property
    def is_degenerate(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True)
class CropSelection:
    """
    A selection rectangle over the source image.

    `unit` is either "px" (image pixels) or "%" (percent of the image size).
    `scale` is the editor's zoom factor and `aspect` the fixed width/height
    ratio, or None for a free selection.
    """

    x: float
    y: float
    width: float
    height: float
    unit: str = PIXEL_UNIT
    scale: float = 1.0
    aspect: Optional[float] = None

    def to_pixels(self, image_width: int, image_height: int) -> "CropSelection":
        if self.unit == PIXEL_UNIT:
            return self
        return replace(
            self,
            x=self.x * image_width / 100.0,
            y=self.y * image_height / 100.0,
            width=self.width * image_width / 100.0,
            height=self.height * image_height / 100.0,
            unit=PIXEL_UNIT,
        )

    def to_percent(self, image_width: int, image_height: int) -> "CropSelection":
        if self.unit == PERCENT_UNIT:
            return self
        return replace(
            self,
            x=self.x * 100.0 / image_width,
            y=self.y * 100.0 / image_height,
            width=self.width * 100.0 / image_width,
            height=self.height * 100.0 / image_height,
            unit=PERCENT_UNIT,
        )

    @classmethod
    def from_display(
        cls,
        x: float,
        y: float,
        width: float,
        height: float,
        *,
        displayed_size: tuple[float, float],
        natural_size: tuple[int, int],
        aspect: Optional[float] = None,
    ) -> "CropSelection":
        """Converts a rectangle drawn over a scaled preview into image pixels."""
        displayed_width, displayed_height = displayed_size
        if displayed_width <= 0 or displayed_height <= 0:
            raise ValueError("Displayed size must be positive")
        scale_x = natural_size[0] / displayed_width
        scale_y = natural_size[1] / displayed_height
        return cls(
            x=x * scale_x,
            y=y * scale_y,
            width=width * scale_x,
            height=height * scale_y,
            unit=PIXEL_UNIT,
            aspect=aspect,
        )

    def to_pixel_crop(self, image_width: int, image_height: int) -> PixelCrop:
        px = self.to_pixels(image_width, image_height)
        return PixelCrop(
            x=int(round(px.x)),
            y=int(round(px.y)),
            width=int(round(px.width)),
            height=int(round(px.height)),
        )


@dataclass(frozen=True)
class ExtractedBlob:
    """Encoded raster produced by confirming a crop."""

    data: bytes
    mime_type: str
    width: int
    height: int

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class OptimizedAsset:
    data: bytes
    mime_type: str
    width: int
    height: int
    preview_url: str
    # False when optimization failed and the input blob was passed through.
    optimized: bool = True

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class RemoteAsset:
    url: str
    path: str


@dataclass(frozen=True)
class EntityRef:
    """Identifies the record that will hold a photo reference."""

    entity_type: EntityType
    entity_id: str
    family_id: Optional[str] = None

    @property
    def collection(self) -> str:
        if self.entity_type == EntityType.USER_PROFILE:
            return USERS_COLLECTION
        return FAMILY_MEMBERS_COLLECTION

    @property
    def storage_prefix(self) -> str:
        if self.entity_type == EntityType.USER_PROFILE:
            return f"{PROFILE_PICTURES_PREFIX}/{self.entity_id}"
        if not self.family_id:
            raise ValueError(
                f"Family member {self.entity_id} has no family_id for storage"
            )
        return f"{FAMILY_MEMBERS_PREFIX}/{self.family_id}/{self.entity_id}"

    @property
    def lock_key(self) -> str:
        return f"photo-session:{self.entity_type.value}:{self.entity_id}"
