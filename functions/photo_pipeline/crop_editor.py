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
Interactive crop editor state.

The editor keeps its selection in native image pixels. Every mutation is
synchronous and clamps the selection inside the image while keeping the
configured aspect ratio. Zoom scales the selection around its center relative
to the size it had at zoom 1, so zooming out and back in restores it.

States: EMPTY -> LOADING -> READY -> EDITING -> CONFIRMED | CANCELLED.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from photo_pipeline.errors import ExtractionFailedError, InvalidTransitionError
from photo_pipeline.types import CropSelection, PixelCrop, SourceImage
from shared.types import CropEditorState

logger = logging.getLogger(__name__)

DEFAULT_ASPECT = 1.0
DEFAULT_INITIAL_PERCENT = 90.0
DEFAULT_MIN_ZOOM = 0.5
DEFAULT_MAX_ZOOM = 3.0

_EDITABLE = (CropEditorState.READY, CropEditorState.EDITING)
_TERMINAL = (CropEditorState.CONFIRMED, CropEditorState.CANCELLED)


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def fit_aspect(
    width: float,
    height: float,
    *,
    aspect: Optional[float],
    max_width: float,
    max_height: float,
) -> tuple[float, float]:
    """Applies the aspect ratio (width drives) and shrinks to fit the bounds."""
    width = max(0.0, width)
    height = max(0.0, height)
    if aspect:
        height = width / aspect
    if width > max_width:
        width = max_width
        if aspect:
            height = width / aspect
    if height > max_height:
        height = max_height
        if aspect:
            width = height * aspect
    return width, height


def clamp_selection(
    x: float,
    y: float,
    width: float,
    height: float,
    *,
    image_width: int,
    image_height: int,
    aspect: Optional[float],
) -> tuple[float, float, float, float]:
    """Clamps size first, then shifts the position so the rect stays inside."""
    width, height = fit_aspect(
        width,
        height,
        aspect=aspect,
        max_width=float(image_width),
        max_height=float(image_height),
    )
    x = _clamp(x, 0.0, max(0.0, image_width - width))
    y = _clamp(y, 0.0, max(0.0, image_height - height))
    return x, y, width, height


def center_aspect_selection(
    image_width: int,
    image_height: int,
    *,
    aspect: Optional[float],
    percent: float,
) -> tuple[float, float, float, float]:
    """Centered selection spanning `percent` of the shorter image side."""
    side = min(image_width, image_height) * percent / 100.0
    if aspect:
        width, height = side, side / aspect
    else:
        width = image_width * percent / 100.0
        height = image_height * percent / 100.0
    width, height = fit_aspect(
        width,
        height,
        aspect=aspect,
        max_width=float(image_width),
        max_height=float(image_height),
    )
    return (
        (image_width - width) / 2.0,
        (image_height - height) / 2.0,
        width,
        height,
    )


def snap_to_pixels(
    x: float,
    y: float,
    width: float,
    height: float,
    *,
    image_width: int,
    image_height: int,
    aspect: Optional[float],
) -> PixelCrop:
    """Converts a float selection to whole pixels inside the image.

    The origin is floored and, with a fixed aspect, the height is derived from
    the rounded width so both sides come from the same value.
    """
    left = min(int(math.floor(x)), image_width - 1)
    top = min(int(math.floor(y)), image_height - 1)
    max_width = image_width - left
    max_height = image_height - top
    w = max(1, min(int(round(width)), max_width))
    if aspect:
        h = int(round(w / aspect))
        if h > max_height:
            h = max_height
            w = max(1, min(int(round(h * aspect)), max_width))
        h = max(1, h)
    else:
        h = max(1, min(int(round(height)), max_height))
    return PixelCrop(x=left, y=top, width=w, height=h)


class CropEditor:
    """Selection and zoom state for one crop session."""

    def __init__(
        self,
        *,
        aspect: Optional[float] = DEFAULT_ASPECT,
        initial_percent: float = DEFAULT_INITIAL_PERCENT,
        min_zoom: float = DEFAULT_MIN_ZOOM,
        max_zoom: float = DEFAULT_MAX_ZOOM,
    ):
        if min_zoom <= 0 or max_zoom < min_zoom:
            raise ValueError(f"Invalid zoom bounds {min_zoom}..{max_zoom}")
        if aspect is not None and aspect <= 0:
            raise ValueError("Aspect ratio must be positive")
        self.aspect = aspect
        self.initial_percent = initial_percent
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.state = CropEditorState.EMPTY
        self.source: Optional[SourceImage] = None
        self.zoom = 1.0
        self._rect: Optional[tuple[float, float, float, float]] = None
        # Selection size at zoom 1.
        self._base_size: Optional[tuple[float, float]] = None

    def _require(self, *states: CropEditorState) -> None:
        if self.state not in states:
            raise InvalidTransitionError(
                f"Crop editor is {self.state.value}, expected one of "
                + ", ".join(s.value for s in states)
            )

    def begin_loading(self) -> None:
        self._require(CropEditorState.EMPTY)
        self.state = CropEditorState.LOADING

    def fail_loading(self) -> None:
        """Returns to EMPTY so another file can be chosen."""
        self._require(CropEditorState.LOADING)
        self.state = CropEditorState.EMPTY

    def load(self, source: SourceImage) -> CropSelection:
        self._require(CropEditorState.LOADING)
        self.source = source
        self.zoom = 1.0
        x, y, w, h = center_aspect_selection(
            source.width,
            source.height,
            aspect=self.aspect,
            percent=self.initial_percent,
        )
        self._rect = (x, y, w, h)
        self._base_size = (w, h)
        self.state = CropEditorState.READY
        return self.selection

    @property
    def selection(self) -> Optional[CropSelection]:
        if self._rect is None:
            return None
        x, y, w, h = self._rect
        return CropSelection(
            x=x, y=y, width=w, height=h, scale=self.zoom, aspect=self.aspect
        )

    def percent_selection(self) -> Optional[CropSelection]:
        selection = self.selection
        if selection is None or self.source is None:
            return None
        return selection.to_percent(self.source.width, self.source.height)

    def set_selection(self, selection: CropSelection) -> CropSelection:
        """Replaces the selection with a user-drawn rectangle, in % or px."""
        self._require(*_EDITABLE)
        px = selection.to_pixels(self.source.width, self.source.height)
        self._rect = clamp_selection(
            px.x,
            px.y,
            px.width,
            px.height,
            image_width=self.source.width,
            image_height=self.source.height,
            aspect=self.aspect,
        )
        _, _, w, h = self._rect
        self._base_size = (w * self.zoom, h * self.zoom)
        self.state = CropEditorState.EDITING
        return self.selection

    def move_to(self, x: float, y: float) -> CropSelection:
        self._require(*_EDITABLE)
        _, _, w, h = self._rect
        self._rect = clamp_selection(
            x,
            y,
            w,
            h,
            image_width=self.source.width,
            image_height=self.source.height,
            aspect=self.aspect,
        )
        self.state = CropEditorState.EDITING
        return self.selection

    def set_zoom(self, scale: float) -> CropSelection:
        self._require(*_EDITABLE)
        self.zoom = _clamp(float(scale), self.min_zoom, self.max_zoom)
        x, y, w, h = self._rect
        center_x, center_y = x + w / 2.0, y + h / 2.0
        base_w, base_h = self._base_size
        # Fit before positioning so a clamped size stays centered.
        w, h = fit_aspect(
            base_w / self.zoom,
            base_h / self.zoom,
            aspect=self.aspect,
            max_width=float(self.source.width),
            max_height=float(self.source.height),
        )
        self._rect = clamp_selection(
            center_x - w / 2.0,
            center_y - h / 2.0,
            w,
            h,
            image_width=self.source.width,
            image_height=self.source.height,
            aspect=self.aspect,
        )
        self.state = CropEditorState.EDITING
        return self.selection

    @property
    def can_confirm(self) -> bool:
        if self.state not in _EDITABLE or self.source is None:
            return False
        crop = self.selection.to_pixel_crop(self.source.width, self.source.height)
        return not crop.is_degenerate

    def confirm(self) -> PixelCrop:
        """Commits the selection and returns it in native image pixels."""
        self._require(*_EDITABLE)
        if not self.can_confirm:
            raise ExtractionFailedError("Crop selection is empty")
        crop = snap_to_pixels(
            *self._rect,
            image_width=self.source.width,
            image_height=self.source.height,
            aspect=self.aspect,
        )
        self.state = CropEditorState.CONFIRMED
        logger.debug("Crop confirmed at %s (zoom %.2f)", crop, self.zoom)
        return crop

    def cancel(self) -> None:
        if self.state in _TERMINAL:
            raise InvalidTransitionError(f"Crop editor is already {self.state.value}")
        self.state = CropEditorState.CANCELLED
        self.close()

    def close(self) -> None:
        """Releases the source image; safe to call more than once."""
        if self.source is not None:
            self.source.release()
