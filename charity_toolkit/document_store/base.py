"""
Abstract document store interface.

Every primitive the back office needs from the hosted database is declared
here as a coroutine. Backends implement the storage; live query
subscriptions are handled once, in this base class.
"""

import inspect
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from .models import DocumentSnapshot, FieldFilter, apply_query, utc_now

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[
    [List[DocumentSnapshot]], Union[None, Awaitable[None]]
]


class _Listener:
    """A registered live query."""

    def __init__(
        self,
        listener_id: int,
        collection: str,
        callback: SnapshotCallback,
        filters: List[FieldFilter],
        order_by: Optional[str],
        descending: bool,
    ):
        self.listener_id = listener_id
        self.collection = collection
        self.callback = callback
        self.filters = filters
        self.order_by = order_by
        self.descending = descending


class Subscription:
    """Handle returned by ``DocumentStore.subscribe``."""

    def __init__(self, store: "DocumentStore", listener_id: int):
        self._store = store
        self._listener_id = listener_id
        self.active = True

    def unsubscribe(self) -> None:
        """Stop delivering query results to the callback."""
        if self.active:
            self._store._remove_listener(self._listener_id)
            self.active = False


class DocumentStore(ABC):
    """Abstract base class for document store backends."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize shared store state.

        Args:
            clock: Callable returning the current time. Used to resolve
                ``SERVER_TIMESTAMP`` fields. Defaults to UTC now.
        """
        self.clock = clock or utc_now
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend."""
        pass

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        """
        Read a document by id.

        Args:
            collection: Collection name
            doc_id: Document id

        Returns:
            Snapshot of the document, or None if it does not exist
        """
        pass

    @abstractmethod
    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """
        Create a document with a store-assigned id.

        Args:
            collection: Collection name
            data: Field map; ``SERVER_TIMESTAMP`` values are resolved

        Returns:
            The new document id
        """
        pass

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        """
        Write a document at a known id.

        Without ``merge`` the document is created or fully overwritten.
        With ``merge`` the fields are merged into whatever is stored.
        """
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """
        Merge fields into an existing document.

        Raises:
            DocumentNotFound: If the document does not exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[Sequence[FieldFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        """
        Query documents of a collection.

        Args:
            collection: Collection name
            filters: Conditions that must all hold
            order_by: Field to order by
            descending: Reverse the order
            limit: Maximum number of documents

        Returns:
            Matching snapshots
        """
        pass

    @abstractmethod
    async def delete_batch(self, refs: Iterable[Tuple[str, str]]) -> int:
        """
        Delete many documents as one atomic write.

        Args:
            refs: ``(collection, doc_id)`` pairs

        Returns:
            Number of documents that existed and were removed
        """
        pass

    async def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        filters: Optional[Sequence[FieldFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        """
        Watch a query.

        The callback receives the current result right away and again after
        every write to ``collection``.

        Returns:
            Subscription handle; call ``unsubscribe()`` to stop
        """
        listener = _Listener(
            listener_id=next(self._listener_ids),
            collection=collection,
            callback=callback,
            filters=list(filters or []),
            order_by=order_by,
            descending=descending,
        )
        self._listeners[listener.listener_id] = listener
        await self._deliver(listener)
        return Subscription(self, listener.listener_id)

    def _remove_listener(self, listener_id: int) -> None:
        self._listeners.pop(listener_id, None)

    async def _notify(self, *collections: str) -> None:
        """Push fresh results to listeners of the given collections."""
        changed = set(collections)
        for listener in list(self._listeners.values()):
            if listener.collection in changed:
                await self._deliver(listener)

    async def _deliver(self, listener: _Listener) -> None:
        snapshots = await self.query(
            listener.collection,
            filters=listener.filters,
            order_by=listener.order_by,
            descending=listener.descending,
        )
        try:
            result = listener.callback(snapshots)
            if inspect.isawaitable(result):
                await result
        except Exception:
            # A broken listener must not fail the write that triggered it
            logger.exception(
                "Snapshot listener on %s raised an error", listener.collection
            )

    @staticmethod
    def _run_query(
        snapshots: Iterable[DocumentSnapshot],
        filters: Optional[Sequence[FieldFilter]],
        order_by: Optional[str],
        descending: bool,
        limit: Optional[int],
    ) -> List[DocumentSnapshot]:
        return apply_query(snapshots, filters, order_by, descending, limit)
