"""
Firebase Admin SDK wiring shared by Firestore, Auth and Storage clients.
"""

from __future__ import annotations

import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials

logger = logging.getLogger(__name__)


def get_firebase_app(
    *,
    project_id: Optional[str] = None,
    storage_bucket: Optional[str] = None,
    credentials_path: Optional[str] = None,
) -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {}
    if project_id:
        options["projectId"] = project_id
    if storage_bucket:
        options["storageBucket"] = storage_bucket
    # Without a key file the SDK falls back to application default credentials.
    cred = credentials.Certificate(credentials_path) if credentials_path else None
    logger.info("Initializing Firebase app for project %s", project_id or "<default>")
    return firebase_admin.initialize_app(cred, options or None)
