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
import time
import uuid
from typing import Optional, Protocol

from photo_pipeline import raster
from photo_pipeline.errors import UploadFailedError
from photo_pipeline.types import EntityRef, OptimizedAsset, RemoteAsset
from shared.types import EntityType

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    """The object storage operations the upload adapter needs."""

    def put_object(self, path: str, data: bytes, content_type: str) -> str:
        ...

    def delete_object(self, path: str) -> None:
        ...


def build_storage_path(
    entity: EntityRef,
    extension: str,
    *,
    timestamp_ms: Optional[int] = None,
) -> str:
    """
    Builds a collision-free object path under the entity's namespace.

    For example `profile_pictures/u1/profile_u1_1700000000000_1a2b3c4d.jpg`
    or `family_members/f1/m1/member_m1_1700000000000_1a2b3c4d.jpg`.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    nonce = uuid.uuid4().hex[:8]
    stem = "profile" if entity.entity_type == EntityType.USER_PROFILE else "member"
    file_name = f"{stem}_{entity.entity_id}_{timestamp_ms}_{nonce}.{extension.lstrip('.')}"
    return f"{entity.storage_prefix}/{file_name}"


def upload_asset(
    asset: OptimizedAsset,
    entity: EntityRef,
    object_store: ObjectStore,
    *,
    timestamp_ms: Optional[int] = None,
) -> RemoteAsset:
    """
    Uploads the asset and returns its durable URL.

    Raises:
        UploadFailedError: On any storage or network error.
    """
    path = build_storage_path(
        entity,
        raster.extension_for_mime_type(asset.mime_type),
        timestamp_ms=timestamp_ms,
    )
    try:
        url = object_store.put_object(path, asset.data, asset.mime_type)
    except Exception as e:
        logger.exception("Upload to %s failed", path)
        raise UploadFailedError(f"Could not upload photo to {path}") from e
    if not url:
        raise UploadFailedError(f"Object store returned no URL for {path}")

    logger.info("Uploaded %s bytes to %s", asset.size, path)
    return RemoteAsset(url=url, path=path)
