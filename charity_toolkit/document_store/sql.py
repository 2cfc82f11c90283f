"""
SQL database backend for the document store.

Documents are kept as JSON in a single table keyed by
``(collection, id)``. Datetimes inside documents are written as tagged ISO
strings so they round-trip through the JSON column with their timezone.
"""

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import JSON, Column, DateTime, Index, String, asc, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .base import DocumentStore
from .exceptions import DocumentNotFound, StoreNotInitialized, StoreUnavailable
from .models import DocumentSnapshot, FieldFilter, merge_fields, resolve_sentinels

Base = declarative_base()

_DATETIME_TAG = "__datetime__"


class DocumentRow(Base):  # type: ignore[valid-type,misc]
    """SQLAlchemy model for stored documents."""

    __tablename__ = "documents"

    collection = Column(String(100), primary_key=True)
    id = Column(String(100), primary_key=True)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_documents_collection_created", collection, created_at),)


def encode_value(value: Any) -> Any:
    """Convert a document value into something the JSON column accepts."""
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    if isinstance(value, dict):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    """Inverse of ``encode_value``."""
    if isinstance(value, dict):
        if set(value) == {_DATETIME_TAG}:
            return datetime.fromisoformat(value[_DATETIME_TAG])
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


class SQLDocumentStore(DocumentStore):
    """Document store backed by a relational database through SQLAlchemy."""

    def __init__(
        self,
        connection_string: str,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize SQL document storage.

        Args:
            connection_string: Database connection string
            clock: Clock used for ``SERVER_TIMESTAMP`` and row timestamps
            id_factory: Generator for store-assigned ids
        """
        super().__init__(clock)
        self.connection_string = connection_string
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None  # type: ignore[type-arg]

    async def initialize(self) -> None:
        """Create the engine and the documents table."""
        try:
            if self.connection_string in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees an empty DB
                self.engine = create_engine(
                    self.connection_string,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            elif self.connection_string.startswith("sqlite"):
                self.engine = create_engine(self.connection_string, pool_pre_ping=True)
            else:
                self.engine = create_engine(
                    self.connection_string,
                    pool_pre_ping=True,
                    pool_size=10,
                    max_overflow=20,
                )

            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Could not open document store: {e}") from e

        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )

    def _session(self) -> Any:
        if self.SessionLocal is None:
            raise StoreNotInitialized()
        return self.SessionLocal()

    @staticmethod
    def _to_snapshot(row: DocumentRow) -> DocumentSnapshot:
        return DocumentSnapshot(
            id=row.id, collection=row.collection, data=decode_value(row.data)
        )

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        try:
            with self._session() as session:
                row = session.get(DocumentRow, (collection, doc_id))
                return self._to_snapshot(row) if row else None
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                f"Read of {collection}/{doc_id} failed: {e}",
                collection=collection,
                doc_id=doc_id,
            ) from e

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = self.id_factory()
        now = self.clock()
        try:
            with self._session() as session:
                session.add(
                    DocumentRow(
                        collection=collection,
                        id=doc_id,
                        data=encode_value(resolve_sentinels(data, now)),
                        created_at=now,
                        updated_at=now,
                    )
                )
                session.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                f"Create in {collection} failed: {e}", collection=collection
            ) from e

        await self._notify(collection)
        return doc_id

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        await self._write(collection, doc_id, data, merge=merge, must_exist=False)

    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        await self._write(collection, doc_id, data, merge=True, must_exist=True)

    async def _write(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool,
        must_exist: bool,
    ) -> None:
        now = self.clock()
        resolved = resolve_sentinels(data, now)
        try:
            with self._session() as session:
                row = session.get(DocumentRow, (collection, doc_id))
                if row is None:
                    if must_exist:
                        raise DocumentNotFound(collection, doc_id)
                    session.add(
                        DocumentRow(
                            collection=collection,
                            id=doc_id,
                            data=encode_value(resolved),
                            created_at=now,
                            updated_at=now,
                        )
                    )
                else:
                    if merge:
                        resolved = merge_fields(decode_value(row.data), resolved)
                    row.data = encode_value(resolved)
                    row.updated_at = now
                session.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                f"Write of {collection}/{doc_id} failed: {e}",
                collection=collection,
                doc_id=doc_id,
            ) from e

        await self._notify(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            with self._session() as session:
                session.query(DocumentRow).filter(
                    DocumentRow.collection == collection, DocumentRow.id == doc_id
                ).delete()
                session.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                f"Delete of {collection}/{doc_id} failed: {e}",
                collection=collection,
                doc_id=doc_id,
            ) from e

        await self._notify(collection)

    async def query(
        self,
        collection: str,
        filters: Optional[Sequence[FieldFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        # Field conditions live inside the JSON payload, so they are
        # evaluated after loading the collection
        try:
            with self._session() as session:
                rows = (
                    session.query(DocumentRow)
                    .filter(DocumentRow.collection == collection)
                    .order_by(asc(DocumentRow.created_at), asc(DocumentRow.id))
                    .all()
                )
                snapshots = [self._to_snapshot(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                f"Query on {collection} failed: {e}", collection=collection
            ) from e

        return self._run_query(snapshots, filters, order_by, descending, limit)

    async def delete_batch(self, refs: Iterable[Tuple[str, str]]) -> int:
        pairs = list(refs)
        if not pairs:
            return 0

        removed = 0
        try:
            with self._session() as session:
                for collection, doc_id in pairs:
                    removed += (
                        session.query(DocumentRow)
                        .filter(
                            DocumentRow.collection == collection,
                            DocumentRow.id == doc_id,
                        )
                        .delete()
                    )
                session.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Batch delete failed: {e}") from e

        await self._notify(*{collection for collection, _ in pairs})
        return removed
