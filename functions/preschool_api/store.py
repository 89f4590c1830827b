"""
Document store abstraction for Firestore, SQL and an in-memory test implementation.

Paths follow the Firestore layout: a collection path has an odd number of
segments (``organizations/org1/students``) and a document path an even
number (``organizations/org1/students/abc``).
"""

from __future__ import annotations

import copy
import json
import time
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Protocol, Sequence, Tuple

from firebase_admin import firestore
from google.api_core import exceptions as gcloud_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter
from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from preschool_common.errors import DocumentNotFoundError

Filter = Tuple[str, str, Any]
Order = Tuple[str, str]

FILTER_OPS = ("==", "!=", "<", "<=", ">", ">=", "in", "array-contains")
ORDER_DIRECTIONS = ("asc", "desc")


@dataclass
class Document:
    id: str
    path: str
    data: dict

    def as_record(self) -> dict:
        """Flatten into the plain ``{"id": ..., **fields}`` shape callers use."""
        return {"id": self.id, **self.data}


class DocumentStore(Protocol):
    """Defines the operations the services need from a document database."""

    def get(self, path: str) -> Optional[Document]:
        ...

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        ...

    def update(self, path: str, data: dict) -> None:
        ...

    def delete(self, path: str) -> None:
        ...

    def add(self, collection_path: str, data: dict) -> Document:
        ...

    def list_documents(self, collection_path: str) -> list[Document]:
        ...

    def query(
        self,
        collection_path: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Order] = (),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Document]:
        ...


def _segments(path: str) -> list[str]:
    segments = path.strip("/").split("/")
    if not path or any(not s for s in segments):
        raise ValueError(f"Invalid path: {path!r}")
    return segments


def split_document_path(path: str) -> tuple[str, str]:
    """Return ``(collection_path, document_id)`` for a document path."""
    segments = _segments(path)
    if len(segments) % 2:
        raise ValueError(f"Not a document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def check_collection_path(path: str) -> str:
    segments = _segments(path)
    if len(segments) % 2 == 0:
        raise ValueError(f"Not a collection path: {path!r}")
    return "/".join(segments)


def new_document_id() -> str:
    return uuid.uuid4().hex[:20]


def deep_merge(base: dict, updates: dict) -> dict:
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


_MISSING = object()


def _lookup(data: dict, field_path: str) -> Any:
    value: Any = data
    for part in field_path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _compare(op: str, actual: Any, expected: Any) -> bool:
    try:
        if op == "==":
            return actual == expected
        if op == "!=":
            return actual != expected
        if op == "<":
            return actual < expected
        if op == "<=":
            return actual <= expected
        if op == ">":
            return actual > expected
        if op == ">=":
            return actual >= expected
        if op == "in":
            return actual in expected
        if op == "array-contains":
            return isinstance(actual, list) and expected in actual
    except TypeError:
        # Values of different types never match, as in Firestore.
        return False
    raise ValueError(f"Unsupported filter operator: {op}")


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, datetime):
        return (3, value.timestamp())
    if isinstance(value, str):
        return (4, value)
    return (5, str(value))


def apply_query(
    documents: Iterable[Document],
    filters: Sequence[Filter] = (),
    order_by: Sequence[Order] = (),
    limit: Optional[int] = None,
    offset: int = 0,
) -> list[Document]:
    """
    Evaluate filters, ordering and pagination over already-loaded documents.

    Documents missing a filtered or ordered field are left out.
    """
    for _, op, _ in filters:
        if op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter operator: {op}")
    for _, direction in order_by:
        if direction not in ORDER_DIRECTIONS:
            raise ValueError(f"Unsupported order direction: {direction}")

    matched = []
    for doc in documents:
        keep = True
        for field_path, op, expected in filters:
            actual = _lookup(doc.data, field_path)
            if actual is _MISSING or not _compare(op, actual, expected):
                keep = False
                break
        if keep and all(
            _lookup(doc.data, field_path) is not _MISSING
            for field_path, _ in order_by
        ):
            matched.append(doc)

    # Stable sorts applied from the last key to the first.
    for field_path, direction in reversed(order_by):
        matched.sort(
            key=lambda d: _sort_key(_lookup(d.data, field_path)),
            reverse=direction == "desc",
        )

    if offset:
        matched = matched[offset:]
    if limit is not None:
        matched = matched[:limit]
    return matched


class InMemoryDocumentStore:
    """Simple in-memory document database for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()

    def get(self, path: str) -> Optional[Document]:
        collection_path, doc_id = split_document_path(path)
        data = self.collections.get(collection_path, {}).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, path=path, data=copy.deepcopy(data))

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        collection_path, doc_id = split_document_path(path)
        docs = self.collections.setdefault(collection_path, {})
        existing = docs.get(doc_id)
        if merge and existing is not None:
            docs[doc_id] = deep_merge(existing, copy.deepcopy(data))
        else:
            docs[doc_id] = copy.deepcopy(data)

    def update(self, path: str, data: dict) -> None:
        collection_path, doc_id = split_document_path(path)
        existing = self.collections.get(collection_path, {}).get(doc_id)
        if existing is None:
            raise DocumentNotFoundError(path)
        existing.update(copy.deepcopy(data))

    def delete(self, path: str) -> None:
        collection_path, doc_id = split_document_path(path)
        self.collections.get(collection_path, {}).pop(doc_id, None)

    def add(self, collection_path: str, data: dict) -> Document:
        collection_path = check_collection_path(collection_path)
        doc_id = new_document_id()
        self.collections.setdefault(collection_path, {})[doc_id] = copy.deepcopy(data)
        return Document(
            id=doc_id, path=f"{collection_path}/{doc_id}", data=copy.deepcopy(data)
        )

    def list_documents(self, collection_path: str) -> list[Document]:
        collection_path = check_collection_path(collection_path)
        return [
            Document(
                id=doc_id,
                path=f"{collection_path}/{doc_id}",
                data=copy.deepcopy(data),
            )
            for doc_id, data in self.collections.get(collection_path, {}).items()
        ]

    def query(
        self,
        collection_path: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Order] = (),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Document]:
        return apply_query(
            self.list_documents(collection_path), filters, order_by, limit, offset
        )


class FirestoreDocumentStore:
    """
    Cloud Firestore implementation on top of the firebase-admin client.
    """

    def __init__(self, client=None):
        self._client = client if client is not None else firestore.client()

    @staticmethod
    def _to_document(snapshot) -> Document:
        return Document(
            id=snapshot.id,
            path=snapshot.reference.path,
            data=snapshot.to_dict() or {},
        )

    def get(self, path: str) -> Optional[Document]:
        split_document_path(path)
        snapshot = self._client.document(path).get()
        if not snapshot.exists:
            return None
        return self._to_document(snapshot)

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        split_document_path(path)
        self._client.document(path).set(data, merge=merge)

    def update(self, path: str, data: dict) -> None:
        split_document_path(path)
        try:
            self._client.document(path).update(data)
        except gcloud_exceptions.NotFound as e:
            raise DocumentNotFoundError(path) from e

    def delete(self, path: str) -> None:
        split_document_path(path)
        self._client.document(path).delete()

    def add(self, collection_path: str, data: dict) -> Document:
        collection_path = check_collection_path(collection_path)
        _, doc_ref = self._client.collection(collection_path).add(data)
        return Document(id=doc_ref.id, path=doc_ref.path, data=dict(data))

    def list_documents(self, collection_path: str) -> list[Document]:
        collection_path = check_collection_path(collection_path)
        return [
            self._to_document(snapshot)
            for snapshot in self._client.collection(collection_path).stream()
        ]

    def query(
        self,
        collection_path: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Order] = (),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Document]:
        collection_path = check_collection_path(collection_path)
        q = self._client.collection(collection_path)
        for field_path, op, value in filters:
            if op not in FILTER_OPS:
                raise ValueError(f"Unsupported filter operator: {op}")
            q = q.where(filter=FieldFilter(field_path, op, value))
        for field_path, direction in order_by:
            q = q.order_by(
                field_path,
                direction=(
                    firestore.Query.DESCENDING
                    if direction == "desc"
                    else firestore.Query.ASCENDING
                ),
            )
        if offset:
            q = q.offset(offset)
        if limit is not None:
            q = q.limit(limit)
        return [self._to_document(snapshot) for snapshot in q.stream()]


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _json_object_hook(obj: dict) -> Any:
    if len(obj) == 1 and "$date" in obj:
        return datetime.fromisoformat(obj["$date"])
    return obj


def dumps_document(value: Any) -> str:
    return json.dumps(value, default=_json_default)


def loads_document(value: str) -> Any:
    return json.loads(value, object_hook=_json_object_hook)


class SqlDocumentStore:
    """
    SQLAlchemy-backed implementation storing one JSON row per document.
    Accepts any SQLAlchemy URL (e.g., Postgres, or SQLite for tests).

    Queries load the collection and filter in process.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDocumentStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
            json_serializer=dumps_document,
            json_deserializer=loads_document,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _to_document(row: "DocumentRow") -> Document:
        return Document(id=row.doc_id, path=row.path, data=copy.deepcopy(row.data))

    def get(self, path: str) -> Optional[Document]:
        split_document_path(path)
        with self.Session() as session:
            row = session.get(DocumentRow, path)
            if not row:
                return None
            return self._to_document(row)

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        collection_path, doc_id = split_document_path(path)
        with self.Session() as session:
            row = session.get(DocumentRow, path)
            if row:
                row.data = deep_merge(row.data, data) if merge else dict(data)
                row.updated_at = time.time()
            else:
                session.add(
                    DocumentRow(
                        path=path,
                        collection=collection_path,
                        doc_id=doc_id,
                        data=dict(data),
                        updated_at=time.time(),
                    )
                )
            session.commit()

    def update(self, path: str, data: dict) -> None:
        split_document_path(path)
        with self.Session() as session:
            row = session.get(DocumentRow, path)
            if not row:
                raise DocumentNotFoundError(path)
            row.data = {**row.data, **data}
            row.updated_at = time.time()
            session.commit()

    def delete(self, path: str) -> None:
        split_document_path(path)
        with self.Session() as session:
            row = session.get(DocumentRow, path)
            if row:
                session.delete(row)
                session.commit()

    def add(self, collection_path: str, data: dict) -> Document:
        collection_path = check_collection_path(collection_path)
        doc_id = new_document_id()
        path = f"{collection_path}/{doc_id}"
        self.set(path, data)
        return Document(id=doc_id, path=path, data=dict(data))

    def list_documents(self, collection_path: str) -> list[Document]:
        collection_path = check_collection_path(collection_path)
        with self.Session() as session:
            stmt = (
                select(DocumentRow)
                .where(DocumentRow.collection == collection_path)
                .order_by(DocumentRow.doc_id.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_document(row) for row in rows]

    def query(
        self,
        collection_path: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Order] = (),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Document]:
        return apply_query(
            self.list_documents(collection_path), filters, order_by, limit, offset
        )


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    path = Column(String, primary_key=True)
    collection = Column(String, nullable=False, index=True)
    doc_id = Column(String, nullable=False)
    data = Column(JSON, nullable=False)
    updated_at = Column(Float, nullable=False)
