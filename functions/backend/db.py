"""
Document store abstraction for SQL databases and an in-memory test
implementation. Firestore lives in backend.firestore.
"""

from __future__ import annotations

import copy
import time
from typing import Dict, Optional, Protocol

from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker


class DocumentNotFoundError(KeyError):
    """Raised when updating a document that does not exist."""


class DocumentStore(Protocol):
    """Interface for document access, keyed by (collection, id)."""

    def get_entity(self, collection: str, entity_id: str) -> Optional[dict]:
        ...

    def set_entity(self, collection: str, entity_id: str, fields: dict) -> None:
        ...

    def update_entity(self, collection: str, entity_id: str, fields: dict) -> None:
        ...


class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.documents: Dict[tuple[str, str], dict] = {}

    def get_entity(self, collection: str, entity_id: str) -> Optional[dict]:
        doc = self.documents.get((collection, entity_id))
        return copy.deepcopy(doc) if doc is not None else None

    def set_entity(self, collection: str, entity_id: str, fields: dict) -> None:
        self.documents[(collection, entity_id)] = copy.deepcopy(fields)

    def update_entity(self, collection: str, entity_id: str, fields: dict) -> None:
        doc = self.documents.get((collection, entity_id))
        if doc is None:
            raise DocumentNotFoundError(f"{collection}/{entity_id}")
        doc.update(copy.deepcopy(fields))

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.documents.clear()


class SqlDocumentStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDocumentStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def get_entity(self, collection: str, entity_id: str) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, entity_id))
            return dict(row.data) if row else None

    def set_entity(self, collection: str, entity_id: str, fields: dict) -> None:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, entity_id))
            if row:
                row.data = dict(fields)
                row.updated_at = time.time()
            else:
                session.add(
                    DocumentRow(
                        collection=collection,
                        entity_id=entity_id,
                        data=dict(fields),
                        updated_at=time.time(),
                    )
                )
            session.commit()

    def update_entity(self, collection: str, entity_id: str, fields: dict) -> None:
        with self.Session() as session:
            stmt = (
                select(DocumentRow)
                .where(
                    DocumentRow.collection == collection,
                    DocumentRow.entity_id == entity_id,
                )
                .with_for_update()
            )
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                raise DocumentNotFoundError(f"{collection}/{entity_id}")
            # Reassign so SQLAlchemy notices the JSON change.
            row.data = {**(row.data or {}), **fields}
            row.updated_at = time.time()
            session.commit()


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    entity_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(Float, nullable=False)
