"""In-process document store backend."""

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .base import DocumentStore
from .exceptions import DocumentNotFound
from .models import DocumentSnapshot, FieldFilter, merge_fields, resolve_sentinels


class InMemoryDocumentStore(DocumentStore):
    """
    Document store kept in process memory.

    Collections are dicts of ``doc_id -> field map`` and keep insertion
    order, which is the order queries return without ``order_by``.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        super().__init__(clock)
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    async def initialize(self) -> None:
        """Nothing to set up for memory storage."""
        pass

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _snapshot(self, collection: str, doc_id: str) -> DocumentSnapshot:
        data = resolve_sentinels(self._collections[collection][doc_id], self.clock())
        return DocumentSnapshot(id=doc_id, collection=collection, data=data)

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        if doc_id not in self._collection(collection):
            return None
        return self._snapshot(collection, doc_id)

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = self.id_factory()
        self._collection(collection)[doc_id] = resolve_sentinels(data, self.clock())
        await self._notify(collection)
        return doc_id

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        docs = self._collection(collection)
        resolved = resolve_sentinels(data, self.clock())
        if merge and doc_id in docs:
            docs[doc_id] = merge_fields(docs[doc_id], resolved)
        else:
            docs[doc_id] = resolved
        await self._notify(collection)

    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        if doc_id not in self._collection(collection):
            raise DocumentNotFound(collection, doc_id)
        await self.set(collection, doc_id, data, merge=True)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)
        await self._notify(collection)

    async def query(
        self,
        collection: str,
        filters: Optional[Sequence[FieldFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        snapshots = [
            self._snapshot(collection, doc_id)
            for doc_id in list(self._collection(collection))
        ]
        return self._run_query(snapshots, filters, order_by, descending, limit)

    async def delete_batch(self, refs: Iterable[Tuple[str, str]]) -> int:
        removed = 0
        touched = set()
        for collection, doc_id in list(refs):
            if self._collection(collection).pop(doc_id, None) is not None:
                removed += 1
            touched.add(collection)
        if touched:
            await self._notify(*touched)
        return removed

    def count(self, collection: str) -> int:
        """Number of documents currently held in a collection."""
        return len(self._collection(collection))
