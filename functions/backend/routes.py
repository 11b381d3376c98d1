"""
HTTP routes for the photo service.

Handlers are plain `def` functions: decoding and re-encoding images is CPU
bound, so FastAPI runs them in its threadpool instead of on the event loop.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from backend.config import get_settings
from backend.db import DocumentStore
from backend.dependencies import (
    get_current_user_id,
    get_document_store,
    get_recent_notifications,
    get_session_manager,
)
from backend.notifications import RecentNotifications
from backend.schemas import (
    HealthResponse,
    MoveRequest,
    NotificationModel,
    NotificationsResponse,
    PhotoSessionResponse,
    PhotoUploadResponse,
    SelectionModel,
    SelectionUpdateRequest,
    ZoomRequest,
)
from photo_pipeline.errors import (
    DecodeFailedError,
    EntityNotFoundError,
    ExtractionFailedError,
    InvalidFormatError,
    InvalidTransitionError,
    MetadataSyncFailedError,
    PhotoPipelineError,
    SessionBusyError,
    SessionNotFoundError,
    UploadFailedError,
)
from photo_pipeline.pipeline import PhotoSession, PhotoSessionManager, PipelineResult
from photo_pipeline.types import PERCENT_UNIT, CropSelection
from shared.constants import (
    FAMILIES_COLLECTION,
    FAMILY_ID_FIELD,
    FAMILY_MEMBERS_COLLECTION,
    OWNER_ID_FIELD,
)
from shared.types import EntityType

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_STATUS = (
    (InvalidFormatError, 400),
    (DecodeFailedError, 422),
    (ExtractionFailedError, 422),
    (UploadFailedError, 502),
    (MetadataSyncFailedError, 502),
    (SessionNotFoundError, 404),
    (EntityNotFoundError, 404),
    (SessionBusyError, 409),
    (InvalidTransitionError, 409),
)


def _http_error(error: PhotoPipelineError) -> HTTPException:
    status_code = 500
    for error_type, code in _ERROR_STATUS:
        if isinstance(error, error_type):
            status_code = code
            break
    return HTTPException(
        status_code=status_code,
        detail={"kind": error.kind, "message": str(error)},
    )


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


def _authorize_entity(
    user_id: str,
    entity_type: EntityType,
    entity_id: str,
    document_store: DocumentStore,
) -> None:
    """
    A user may change their own profile photo, and a family owner may change
    the photos of that family's members. Missing records fall through so the
    pipeline reports them as not found.
    """
    if entity_type == EntityType.USER_PROFILE:
        if entity_id != user_id:
            raise HTTPException(
                status_code=403, detail="Cannot change another user's photo"
            )
        return

    member = document_store.get_entity(FAMILY_MEMBERS_COLLECTION, entity_id)
    if not member or not member.get(FAMILY_ID_FIELD):
        return
    family = document_store.get_entity(FAMILIES_COLLECTION, member[FAMILY_ID_FIELD])
    if not family or family.get(OWNER_ID_FIELD) != user_id:
        raise HTTPException(
            status_code=403, detail="Only the family owner can change member photos"
        )


def _read_upload(file: UploadFile) -> bytes:
    limit = get_settings().max_upload_bytes
    data = file.file.read(limit + 1)
    if len(data) > limit:
        raise HTTPException(
            status_code=413, detail=f"File exceeds the {limit} byte upload limit"
        )
    return data


def _owned_session(
    manager: PhotoSessionManager, session_id: str, user_id: Optional[str]
) -> PhotoSession:
    user_id = _require_user(user_id)
    try:
        session = manager.get_session(session_id)
    except PhotoPipelineError as e:
        raise _http_error(e) from e
    if session.owner_id != user_id:
        raise HTTPException(status_code=403, detail="Not your photo session")
    return session


def _selection_model(selection: Optional[CropSelection]) -> Optional[SelectionModel]:
    if selection is None:
        return None
    return SelectionModel(
        x=selection.x,
        y=selection.y,
        width=selection.width,
        height=selection.height,
        unit=selection.unit,
    )


def _session_response(
    session: PhotoSession, *, include_preview: bool = False
) -> PhotoSessionResponse:
    editor = session.editor
    source = session.source
    return PhotoSessionResponse(
        session_id=session.session_id,
        entity_type=session.entity.entity_type.value,
        entity_id=session.entity.entity_id,
        state=session.state.value,
        stage=session.stage.value,
        image_width=source.width,
        image_height=source.height,
        zoom=editor.zoom,
        can_confirm=editor.can_confirm,
        selection=_selection_model(editor.percent_selection()),
        pixel_selection=_selection_model(editor.selection),
        preview_url=(
            source.preview_data_url()
            if include_preview and not source.released
            else None
        ),
        expires_at=session.expires_at,
    )


def _upload_response(result: PipelineResult) -> PhotoUploadResponse:
    return PhotoUploadResponse(
        url=result.url,
        path=result.path,
        width=result.width,
        height=result.height,
        mime_type=result.mime_type,
        optimized=result.optimized,
        identity_synced=result.identity_synced,
    )


@router.post("/photo-sessions", response_model=PhotoSessionResponse, status_code=201)
def open_photo_session(
    file: UploadFile = File(...),
    entity_type: EntityType = Form(...),
    entity_id: str = Form(..., min_length=1),
    user_id: Optional[str] = Depends(get_current_user_id),
    manager: PhotoSessionManager = Depends(get_session_manager),
    document_store: DocumentStore = Depends(get_document_store),
):
    """
    Load an image and start a crop session for a user or family member.
    """
    user_id = _require_user(user_id)
    _authorize_entity(user_id, entity_type, entity_id, document_store)
    data = _read_upload(file)
    try:
        session = manager.open_session(
            entity_type,
            entity_id,
            data,
            content_type=file.content_type,
            filename=file.filename,
            owner_id=user_id,
        )
    except PhotoPipelineError as e:
        raise _http_error(e) from e
    return _session_response(session, include_preview=True)


@router.get("/photo-sessions/{session_id}", response_model=PhotoSessionResponse)
def get_photo_session(
    session_id: str,
    include_preview: bool = Query(default=False),
    user_id: Optional[str] = Depends(get_current_user_id),
    manager: PhotoSessionManager = Depends(get_session_manager),
):
    session = _owned_session(manager, session_id, user_id)
    return _session_response(session, include_preview=include_preview)


@router.put(
    "/photo-sessions/{session_id}/selection", response_model=PhotoSessionResponse
)
def update_selection(
    session_id: str,
    payload: SelectionUpdateRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    manager: PhotoSessionManager = Depends(get_session_manager),
):
    """
    Replace the crop rectangle. Rectangles drawn over a scaled preview carry
    the preview's displayed size and are mapped back to image pixels.
    """
    session = _owned_session(manager, session_id, user_id)
    source = session.source
    if payload.displayed_width and payload.displayed_height:
        selection = CropSelection.from_display(
            payload.x,
            payload.y,
            payload.width,
            payload.height,
            displayed_size=(payload.displayed_width, payload.displayed_height),
            natural_size=(source.width, source.height),
            aspect=session.editor.aspect,
        )
    else:
        selection = CropSelection(
            x=payload.x,
            y=payload.y,
            width=payload.width,
            height=payload.height,
            unit=payload.unit,
            aspect=session.editor.aspect,
        )
    try:
        session = manager.update_selection(session_id, selection)
    except PhotoPipelineError as e:
        raise _http_error(e) from e
    return _session_response(session)


@router.put(
    "/photo-sessions/{session_id}/position", response_model=PhotoSessionResponse
)
def move_selection(
    session_id: str,
    payload: MoveRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    manager: PhotoSessionManager = Depends(get_session_manager),
):
    session = _owned_session(manager, session_id, user_id)
    x, y = payload.x, payload.y
    if payload.unit == PERCENT_UNIT:
        x = x * session.source.width / 100.0
        y = y * session.source.height / 100.0
    try:
        session = manager.move_selection(session_id, x, y)
    except PhotoPipelineError as e:
        raise _http_error(e) from e
    return _session_response(session)


@router.put("/photo-sessions/{session_id}/zoom", response_model=PhotoSessionResponse)
def set_zoom(
    session_id: str,
    payload: ZoomRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    manager: PhotoSessionManager = Depends(get_session_manager),
):
    _owned_session(manager, session_id, user_id)
    try:
        session = manager.set_zoom(session_id, payload.scale)
    except PhotoPipelineError as e:
        raise _http_error(e) from e
    return _session_response(session)


@router.post(
    "/photo-sessions/{session_id}/confirm", response_model=PhotoUploadResponse
)
def confirm_photo_session(
    session_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    manager: PhotoSessionManager = Depends(get_session_manager),
):
    """
    Commit the crop, then optimize, upload and store the photo reference.
    """
    _owned_session(manager, session_id, user_id)
    try:
        result = manager.confirm(session_id)
    except PhotoPipelineError as e:
        raise _http_error(e) from e
    return _upload_response(result)


@router.delete("/photo-sessions/{session_id}", status_code=204)
def cancel_photo_session(
    session_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    manager: PhotoSessionManager = Depends(get_session_manager),
):
    _owned_session(manager, session_id, user_id)
    try:
        manager.cancel(session_id)
    except PhotoPipelineError as e:
        raise _http_error(e) from e


@router.post(
    "/photos/{entity_type}/{entity_id}",
    response_model=PhotoUploadResponse,
    status_code=201,
)
def upload_photo(
    entity_type: EntityType,
    entity_id: str,
    file: UploadFile = File(...),
    user_id: Optional[str] = Depends(get_current_user_id),
    manager: PhotoSessionManager = Depends(get_session_manager),
    document_store: DocumentStore = Depends(get_document_store),
):
    """Set a photo from a whole image without cropping."""
    user_id = _require_user(user_id)
    _authorize_entity(user_id, entity_type, entity_id, document_store)
    data = _read_upload(file)
    try:
        result = manager.upload_direct(
            entity_type,
            entity_id,
            data,
            content_type=file.content_type,
            filename=file.filename,
            owner_id=user_id,
        )
    except PhotoPipelineError as e:
        raise _http_error(e) from e
    return _upload_response(result)


@router.get("/notifications", response_model=NotificationsResponse)
def list_notifications(
    topic: Optional[str] = Query(default=None, pattern="^(status|photoStatus)$"),
    user_id: Optional[str] = Depends(get_current_user_id),
    recent: RecentNotifications = Depends(get_recent_notifications),
):
    """Recent notifications raised by the caller's own photo operations."""
    user_id = _require_user(user_id)
    return NotificationsResponse(
        notifications=[
            NotificationModel(**notification.as_dict())
            for notification in recent.list(topic=topic, owner_id=user_id)
        ]
    )


@router.get("/health", response_model=HealthResponse)
def health(manager: PhotoSessionManager = Depends(get_session_manager)):
    return HealthResponse(status="ok", active_sessions=manager.active_session_count)
