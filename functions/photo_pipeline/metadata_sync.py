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
from datetime import datetime, timezone
from typing import Optional, Protocol

from photo_pipeline.errors import EntityNotFoundError, MetadataSyncFailedError
from photo_pipeline.types import EntityRef, RemoteAsset
from shared.constants import FAMILY_ID_FIELD, PHOTO_FIELD, UPDATED_AT_FIELD
from shared.types import EntityType

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    def get_entity(self, collection: str, entity_id: str) -> Optional[dict]:
        ...

    def update_entity(self, collection: str, entity_id: str, fields: dict) -> None:
        ...


class IdentityProvider(Protocol):
    def has_user(self, user_id: str) -> bool:
        ...

    def update_profile_reference(self, user_id: str, url: str) -> None:
        ...


def resolve_entity(
    entity_type: EntityType, entity_id: str, document_store: DocumentStore
) -> EntityRef:
    """Loads the target record and returns a reference to it.

    Family members carry their family id, which namespaces their photos.
    """
    probe = EntityRef(entity_type=entity_type, entity_id=entity_id)
    record = document_store.get_entity(probe.collection, entity_id)
    if record is None:
        raise EntityNotFoundError(f"No {entity_type.value} record {entity_id}")
    if entity_type == EntityType.FAMILY_MEMBER:
        family_id = record.get(FAMILY_ID_FIELD)
        if not family_id:
            raise EntityNotFoundError(f"Family member {entity_id} has no family")
        return EntityRef(entity_type=entity_type, entity_id=entity_id, family_id=family_id)
    return probe


def sync_entity_photo(
    entity: EntityRef,
    remote: RemoteAsset,
    *,
    document_store: DocumentStore,
    identity_provider: Optional[IdentityProvider] = None,
) -> bool:
    """
    Records the uploaded photo on the entity.

    The document store write is the primary write and must succeed. For user
    profiles the identity provider's photo field is then updated as a
    best-effort secondary write.

    Returns:
        bool: True if the identity provider was updated as well.

    Raises:
        MetadataSyncFailedError: If the document store write fails.
    """
    fields = {
        PHOTO_FIELD: remote.url,
        UPDATED_AT_FIELD: datetime.now(timezone.utc).isoformat(),
    }
    try:
        document_store.update_entity(entity.collection, entity.entity_id, fields)
    except Exception as e:
        logger.exception(
            "Failed to record photo on %s/%s", entity.collection, entity.entity_id
        )
        raise MetadataSyncFailedError(
            f"Could not save the photo on {entity.entity_type.value} {entity.entity_id}"
        ) from e

    if entity.entity_type != EntityType.USER_PROFILE or identity_provider is None:
        return False

    try:
        if not identity_provider.has_user(entity.entity_id):
            logger.info("No identity record for %s, skipping photo sync", entity.entity_id)
            return False
        identity_provider.update_profile_reference(entity.entity_id, remote.url)
    except Exception as e:
        logger.warning(
            "Identity provider photo update failed for %s: %s", entity.entity_id, e
        )
        return False
    return True
