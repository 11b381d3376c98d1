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
Crop session orchestration.

A session owns one SourceImage and one CropEditor for a target entity. It
holds an entity-keyed lock from the moment it opens until it reaches a
terminal state, so two sessions (for example two browser tabs) cannot race
on the same record. Stages always run in order: extract, optimize, upload,
sync. Nothing is written to the record unless the upload succeeded.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from photo_pipeline.crop_editor import CropEditor
from photo_pipeline.errors import (
    InvalidFormatError,
    InvalidTransitionError,
    MetadataSyncFailedError,
    PhotoPipelineError,
    SessionBusyError,
    SessionNotFoundError,
)
from photo_pipeline.extractor import extract_crop
from photo_pipeline.loader import is_image_mime_type, load_source_image
from photo_pipeline.metadata_sync import (
    DocumentStore,
    IdentityProvider,
    resolve_entity,
    sync_entity_photo,
)
from photo_pipeline.optimizer import (
    AVATAR_OPTIMIZER_CONFIG,
    OptimizerConfig,
    optimize_image,
)
from photo_pipeline.types import (
    CropSelection,
    EntityRef,
    PixelCrop,
    RemoteAsset,
    SourceImage,
)
from photo_pipeline.upload import ObjectStore, upload_asset
from shared.types import CropEditorState, EntityType, NotificationKind, PipelineStage

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 15 * 60

ERROR_TITLES = {
    "InvalidFormat": "Invalid format",
    "DecodeFailed": "Image could not be loaded",
    "ExtractionFailed": "Crop failed",
    "UploadFailed": "Upload failed",
    "MetadataSyncFailed": "Photo could not be saved",
}


class Notifier(Protocol):
    def notify(
        self,
        kind: NotificationKind,
        title: str,
        detail: str = "",
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        ...

    def announce(self, text: str, *, owner_id: Optional[str] = None) -> None:
        ...


class SessionLock(Protocol):
    def acquire(self, key: str, token: str, ttl_seconds: float) -> bool:
        ...

    def release(self, key: str, token: str) -> bool:
        ...


@dataclass
class PhotoSession:
    session_id: str
    entity: EntityRef
    editor: CropEditor
    lock_token: str
    # Fixed when the session opens; edits do not extend it.
    expires_at: float
    owner_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    stage: PipelineStage = PipelineStage.EDITING

    @property
    def state(self) -> CropEditorState:
        return self.editor.state

    @property
    def source(self) -> Optional[SourceImage]:
        return self.editor.source


@dataclass(frozen=True)
class PipelineResult:
    url: str
    path: str
    width: int
    height: int
    mime_type: str
    optimized: bool
    identity_synced: bool


class PhotoSessionManager:
    """Registry of active crop sessions and the pipeline that finishes them."""

    def __init__(
        self,
        *,
        document_store: DocumentStore,
        object_store: ObjectStore,
        notifier: Notifier,
        session_lock: SessionLock,
        identity_provider: Optional[IdentityProvider] = None,
        optimizer_config: OptimizerConfig = AVATAR_OPTIMIZER_CONFIG,
        editor_factory: Callable[[], CropEditor] = CropEditor,
        session_ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.document_store = document_store
        self.object_store = object_store
        self.notifier = notifier
        self.session_lock = session_lock
        self.identity_provider = identity_provider
        self.optimizer_config = optimizer_config
        self.editor_factory = editor_factory
        self.session_ttl_seconds = session_ttl_seconds
        self._clock = clock
        self._sessions: dict[str, PhotoSession] = {}
        self._mutex = threading.Lock()

    # Session lifecycle

    def open_session(
        self,
        entity_type: EntityType,
        entity_id: str,
        data: bytes,
        *,
        content_type: Optional[str],
        filename: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> PhotoSession:
        """Validates and decodes the file, then starts editing.

        Raises:
            InvalidFormatError, DecodeFailedError: The file is unusable.
            EntityNotFoundError: The target record does not exist.
            SessionBusyError: Another session holds the entity.
        """
        self._check_format(content_type, filename, owner_id)
        self.sweep_expired()
        entity = resolve_entity(entity_type, entity_id, self.document_store)
        token = self._acquire(entity)

        # The lock is released on any failure before the session is registered.
        try:
            editor = self.editor_factory()
            editor.begin_loading()
            self.notifier.announce("Loading image", owner_id=owner_id)
            try:
                source = load_source_image(
                    data, content_type=content_type, filename=filename
                )
            except PhotoPipelineError as e:
                editor.fail_loading()
                self._report(e, owner_id)
                raise
            editor.load(source)

            now = self._clock()
            session = PhotoSession(
                session_id=uuid.uuid4().hex,
                entity=entity,
                editor=editor,
                lock_token=token,
                expires_at=now + self.session_ttl_seconds,
                owner_id=owner_id,
                created_at=now,
            )
            with self._mutex:
                self._sessions[session.session_id] = session
        except Exception:
            self.session_lock.release(entity.lock_key, token)
            raise
        logger.info(
            "Opened photo session %s for %s %s (%sx%s)",
            session.session_id,
            entity_type.value,
            entity_id,
            source.width,
            source.height,
        )
        self.notifier.announce("Image ready to crop", owner_id=owner_id)
        return session

    def get_session(self, session_id: str) -> PhotoSession:
        with self._mutex:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"No active photo session {session_id}")
        if session.stage == PipelineStage.EDITING and session.expires_at <= self._clock():
            self._expire(session)
            raise SessionNotFoundError(f"Photo session {session_id} expired")
        return session

    def update_selection(self, session_id: str, selection: CropSelection) -> PhotoSession:
        session = self._editable(session_id)
        session.editor.set_selection(selection)
        return session

    def move_selection(self, session_id: str, x: float, y: float) -> PhotoSession:
        session = self._editable(session_id)
        session.editor.move_to(x, y)
        return session

    def set_zoom(self, session_id: str, scale: float) -> PhotoSession:
        session = self._editable(session_id)
        session.editor.set_zoom(scale)
        return session

    def cancel(self, session_id: str) -> None:
        session = self._editable(session_id)
        session.editor.cancel()
        session.stage = PipelineStage.CANCELLED
        self._close(session)
        logger.info("Cancelled photo session %s", session_id)

    def confirm(self, session_id: str) -> PipelineResult:
        """
        Commits the crop and runs extract, optimize, upload and sync.

        A degenerate selection raises ExtractionFailedError and leaves the
        session open for editing. Any later failure ends the session.
        """
        session = self._editable(session_id)
        with self._mutex:
            if session.stage != PipelineStage.EDITING:
                raise InvalidTransitionError(
                    f"Photo session {session_id} is already {session.stage.value}"
                )
            try:
                crop = session.editor.confirm()
            except PhotoPipelineError as e:
                self._report(e, session.owner_id)
                raise
            session.stage = PipelineStage.EXTRACTING

        def advance(stage: PipelineStage) -> None:
            session.stage = stage

        try:
            return self._run(
                session.entity,
                session.source,
                crop,
                advance,
                owner_id=session.owner_id,
            )
        finally:
            self._close(session)

    def upload_direct(
        self,
        entity_type: EntityType,
        entity_id: str,
        data: bytes,
        *,
        content_type: Optional[str],
        filename: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> PipelineResult:
        """Sets a photo from a whole file without an editing step."""
        self._check_format(content_type, filename, owner_id)
        entity = resolve_entity(entity_type, entity_id, self.document_store)
        token = self._acquire(entity)
        try:
            try:
                source = load_source_image(
                    data, content_type=content_type, filename=filename
                )
            except PhotoPipelineError as e:
                self._report(e, owner_id)
                raise
            with source:
                full_frame = PixelCrop(x=0, y=0, width=source.width, height=source.height)
                return self._run(entity, source, full_frame, owner_id=owner_id)
        finally:
            self.session_lock.release(entity.lock_key, token)

    def sweep_expired(self) -> int:
        """Ends sessions whose TTL elapsed while editing. Returns the count."""
        now = self._clock()
        with self._mutex:
            expired = [
                s
                for s in self._sessions.values()
                if s.stage == PipelineStage.EDITING and s.expires_at <= now
            ]
        for session in expired:
            self._expire(session)
        return len(expired)

    @property
    def active_session_count(self) -> int:
        with self._mutex:
            return len(self._sessions)

    # Internals

    def _run(
        self,
        entity: EntityRef,
        source: SourceImage,
        crop: PixelCrop,
        advance: Callable[[PipelineStage], None] = lambda stage: None,
        *,
        owner_id: Optional[str] = None,
    ) -> PipelineResult:
        self.notifier.notify(
            NotificationKind.LOADING,
            "Processing image",
            "Please wait",
            owner_id=owner_id,
        )
        try:
            blob = extract_crop(source, crop)

            advance(PipelineStage.OPTIMIZING)
            asset = optimize_image(blob, self.optimizer_config)

            advance(PipelineStage.UPLOADING)
            self.notifier.announce("Uploading photo", owner_id=owner_id)
            remote = upload_asset(asset, entity, self.object_store)

            advance(PipelineStage.SYNCING)
            try:
                identity_synced = sync_entity_photo(
                    entity,
                    remote,
                    document_store=self.document_store,
                    identity_provider=self.identity_provider,
                )
            except MetadataSyncFailedError:
                self._discard_orphan(remote)
                raise
        except PhotoPipelineError as e:
            advance(PipelineStage.ERROR)
            self._report(e, owner_id)
            raise

        advance(PipelineStage.SUCCESS)
        self.notifier.notify(
            NotificationKind.SUCCESS,
            "Photo updated",
            "The photo was saved",
            owner_id=owner_id,
        )
        self.notifier.announce("Photo updated", owner_id=owner_id)
        logger.info(
            "Stored %s on %s/%s",
            remote.path,
            entity.collection,
            entity.entity_id,
        )
        return PipelineResult(
            url=remote.url,
            path=remote.path,
            width=asset.width,
            height=asset.height,
            mime_type=asset.mime_type,
            optimized=asset.optimized,
            identity_synced=identity_synced,
        )

    def _check_format(
        self,
        content_type: Optional[str],
        filename: Optional[str],
        owner_id: Optional[str] = None,
    ) -> None:
        if not is_image_mime_type(content_type):
            error = InvalidFormatError(
                f"Expected an image file, got {content_type or 'unknown type'}"
                + (f" ({filename})" if filename else "")
            )
            self._report(error, owner_id)
            raise error

    def _acquire(self, entity: EntityRef) -> str:
        token = uuid.uuid4().hex
        if not self.session_lock.acquire(entity.lock_key, token, self.session_ttl_seconds):
            raise SessionBusyError(
                f"A photo session is already open for {entity.entity_type.value} "
                f"{entity.entity_id}"
            )
        return token

    def _editable(self, session_id: str) -> PhotoSession:
        session = self.get_session(session_id)
        if session.stage != PipelineStage.EDITING:
            raise InvalidTransitionError(
                f"Photo session {session_id} is {session.stage.value}"
            )
        return session

    def _close(self, session: PhotoSession) -> None:
        session.editor.close()
        with self._mutex:
            self._sessions.pop(session.session_id, None)
        try:
            self.session_lock.release(session.entity.lock_key, session.lock_token)
        except Exception:
            # The lock TTL reclaims it.
            logger.exception("Failed to release lock %s", session.entity.lock_key)

    def _expire(self, session: PhotoSession) -> None:
        session.stage = PipelineStage.EXPIRED
        self._close(session)
        logger.info("Photo session %s expired", session.session_id)

    def _discard_orphan(self, remote: RemoteAsset) -> None:
        try:
            self.object_store.delete_object(remote.path)
            logger.info("Deleted orphaned upload %s", remote.path)
        except Exception as e:
            logger.warning("Could not delete orphaned upload %s: %s", remote.path, e)

    def _report(self, error: PhotoPipelineError, owner_id: Optional[str] = None) -> None:
        title = ERROR_TITLES.get(error.kind, "Photo error")
        self.notifier.notify(
            NotificationKind.ERROR, title, str(error), owner_id=owner_id
        )
        self.notifier.announce(title, owner_id=owner_id)
