"""
Pydantic schemas for the photo service.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class SelectionModel(BaseModel):
    x: float
    y: float
    width: float
    height: float
    unit: Literal["px", "%"] = "%"


class SelectionUpdateRequest(BaseModel):
    """
    A selection rectangle. With `displayed_width`/`displayed_height` set, the
    rectangle is in pixels of the scaled preview the user drew on.
    """

    x: float = Field(..., ge=0)
    y: float = Field(..., ge=0)
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)
    unit: Literal["px", "%"] = "%"
    displayed_width: Optional[float] = Field(default=None, gt=0)
    displayed_height: Optional[float] = Field(default=None, gt=0)


class MoveRequest(BaseModel):
    x: float
    y: float
    unit: Literal["px", "%"] = "%"


class ZoomRequest(BaseModel):
    scale: float = Field(..., gt=0)


class PhotoSessionResponse(BaseModel):
    session_id: str
    entity_type: str
    entity_id: str
    state: str
    stage: str
    image_width: int
    image_height: int
    zoom: float
    can_confirm: bool
    selection: Optional[SelectionModel] = None
    pixel_selection: Optional[SelectionModel] = None
    preview_url: Optional[str] = None
    expires_at: float


class PhotoUploadResponse(BaseModel):
    url: str
    path: str
    width: int
    height: int
    mime_type: str
    optimized: bool
    identity_synced: bool


class NotificationModel(BaseModel):
    topic: str
    kind: str
    title: str
    detail: str = ""
    timestamp: float


class NotificationsResponse(BaseModel):
    notifications: list[NotificationModel]


class HealthResponse(BaseModel):
    status: Literal["ok"]
    active_sessions: int
