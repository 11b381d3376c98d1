"""
Firestore-backed document store.
"""

from __future__ import annotations

from typing import Any, Optional

from google.api_core import exceptions

from backend.db import DocumentNotFoundError


class FirestoreDocumentStore:
    """Reads and writes documents through a firestore.Client."""

    def __init__(self, client: Any):
        self.client = client

    def get_entity(self, collection: str, entity_id: str) -> Optional[dict]:
        doc = self.client.collection(collection).document(entity_id).get()
        if not doc.exists:
            return None
        return doc.to_dict()

    def set_entity(self, collection: str, entity_id: str, fields: dict) -> None:
        self.client.collection(collection).document(entity_id).set(fields)

    def update_entity(self, collection: str, entity_id: str, fields: dict) -> None:
        doc_ref = self.client.collection(collection).document(entity_id)
        try:
            doc_ref.update(fields)
        except exceptions.NotFound as e:
            raise DocumentNotFoundError(f"{collection}/{entity_id}") from e
