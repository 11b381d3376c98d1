"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Header

from backend.config import Settings, get_settings
from backend.db import DocumentStore, InMemoryDocumentStore, SqlDocumentStore
from backend.firebase import get_firebase_app
from backend.identity import (
    FirebaseIdentityProvider,
    IdentityProvider,
    InMemoryIdentityProvider,
)
from backend.locks import InMemorySessionLock, RedisSessionLock, SessionLock
from backend.notifications import NotificationChannel, Notifier, RecentNotifications
from backend.storage import (
    CosObjectStore,
    FirebaseObjectStore,
    InMemoryObjectStore,
    ObjectStore,
)
from photo_pipeline.crop_editor import CropEditor
from photo_pipeline.optimizer import OptimizerConfig
from photo_pipeline.pipeline import PhotoSessionManager

logger = logging.getLogger(__name__)

_document_store: DocumentStore | None = None
_object_store: ObjectStore | None = None
_identity_provider: IdentityProvider | None = None
_identity_resolved = False
_session_lock: SessionLock | None = None
_notification_channel: NotificationChannel | None = None
_recent_notifications: RecentNotifications | None = None
_session_manager: PhotoSessionManager | None = None


def _use_firebase(settings: Settings) -> bool:
    return not settings.use_in_memory_backends and bool(settings.firebase_project_id)


def _firebase_app(settings: Settings):
    return get_firebase_app(
        project_id=settings.firebase_project_id,
        storage_bucket=settings.firebase_storage_bucket,
        credentials_path=settings.firebase_credentials_path,
    )


def get_document_store() -> DocumentStore:
    """
    Return a singleton document store so records persist across requests.
    """
    global _document_store
    if _document_store:
        return _document_store

    settings = get_settings()
    if _use_firebase(settings):
        from firebase_admin import firestore

        from backend.firestore import FirestoreDocumentStore

        _document_store = FirestoreDocumentStore(
            firestore.client(app=_firebase_app(settings))
        )
    elif settings.use_in_memory_backends or not settings.database_url:
        _document_store = InMemoryDocumentStore()
    else:
        _document_store = SqlDocumentStore(settings.database_url)
    return _document_store


def get_object_store() -> ObjectStore:
    global _object_store
    if _object_store:
        return _object_store

    settings = get_settings()
    if _use_firebase(settings) and settings.firebase_storage_bucket:
        from firebase_admin import storage

        _object_store = FirebaseObjectStore(
            bucket=storage.bucket(app=_firebase_app(settings))
        )
    elif settings.use_in_memory_backends or not settings.cos_bucket:
        _object_store = InMemoryObjectStore()
    else:
        _object_store = CosObjectStore(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.cos_public_base_url,
        )
    return _object_store


def get_identity_provider() -> Optional[IdentityProvider]:
    """
    Return the token verifier, or None when none is configured.

    The in-memory provider accepts any user id as its own token, so it is only
    used together with the in-memory backends. Without a provider every
    authenticated request is rejected.
    """
    global _identity_provider, _identity_resolved
    if _identity_resolved:
        return _identity_provider

    settings = get_settings()
    if _use_firebase(settings):
        _identity_provider = FirebaseIdentityProvider(_firebase_app(settings))
    elif settings.use_in_memory_backends:
        _identity_provider = InMemoryIdentityProvider()
    else:
        logger.warning(
            "No identity provider configured; authenticated requests will be "
            "rejected. Set FIREBASE_PROJECT_ID or USE_IN_MEMORY_BACKENDS."
        )
        _identity_provider = None
    _identity_resolved = True
    return _identity_provider


def get_session_lock() -> SessionLock:
    global _session_lock
    if _session_lock:
        return _session_lock

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _session_lock = RedisSessionLock(
            url=settings.redis_url, key_prefix=settings.redis_lock_prefix
        )
    else:
        _session_lock = InMemorySessionLock()
    return _session_lock


def get_notification_channel() -> NotificationChannel:
    global _notification_channel
    if _notification_channel is None:
        _notification_channel = NotificationChannel()
    return _notification_channel


def get_recent_notifications() -> RecentNotifications:
    global _recent_notifications
    if _recent_notifications is None:
        _recent_notifications = RecentNotifications(
            get_notification_channel(),
            maxlen=get_settings().notification_buffer_size,
        )
    return _recent_notifications


def get_session_manager() -> PhotoSessionManager:
    """
    Return the singleton session manager so crop sessions survive between
    requests of the same process.
    """
    global _session_manager
    if _session_manager:
        return _session_manager

    settings = get_settings()
    # Subscribe the buffer before anything can publish.
    get_recent_notifications()

    def editor_factory() -> CropEditor:
        return CropEditor(
            aspect=settings.crop_aspect,
            initial_percent=settings.crop_initial_percent,
            min_zoom=settings.crop_min_zoom,
            max_zoom=settings.crop_max_zoom,
        )

    _session_manager = PhotoSessionManager(
        document_store=get_document_store(),
        object_store=get_object_store(),
        notifier=Notifier(get_notification_channel()),
        session_lock=get_session_lock(),
        identity_provider=get_identity_provider(),
        optimizer_config=OptimizerConfig(
            max_width=settings.photo_max_width,
            max_height=settings.photo_max_height,
            quality=settings.photo_quality,
            output_format=settings.photo_output_format,
        ),
        editor_factory=editor_factory,
        session_ttl_seconds=settings.photo_session_ttl_seconds,
    )
    return _session_manager


def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
) -> Optional[str]:
    """Resolve the caller from an `Authorization: Bearer <token>` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    provider = get_identity_provider()
    if provider is None:
        return None
    return provider.get_current_user_id(token.strip())


def reset_dependencies() -> None:
    """Drop cached singletons (useful in tests)."""
    global _document_store, _object_store, _identity_provider, _identity_resolved
    global _session_lock
    global _notification_channel, _recent_notifications, _session_manager
    if _recent_notifications is not None:
        _recent_notifications.close()
    _document_store = None
    _object_store = None
    _identity_provider = None
    _identity_resolved = False
    _session_lock = None
    _notification_channel = None
    _recent_notifications = None
    _session_manager = None
