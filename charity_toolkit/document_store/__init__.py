"""
Document Store Module - asynchronous access to the hosted database.

Declares the primitives the back office relies on (read, create, upsert,
merge, delete, query, batched delete, live query) and ships an in-memory
backend and a SQLAlchemy backend.
"""

import json
from typing import Any, Dict

from . import collections
from .base import DocumentStore, Subscription
from .exceptions import (
    DocumentNotFound,
    DocumentStoreError,
    StoreNotInitialized,
    StoreUnavailable,
)
from .memory import InMemoryDocumentStore
from .models import SERVER_TIMESTAMP, DocumentSnapshot, FieldFilter, utc_now, where
from .sql import SQLDocumentStore

_store_instances: Dict[str, DocumentStore] = {}


async def get_document_store(backend: str = "memory", **kwargs: Any) -> DocumentStore:
    """
    Get or create a document store instance.

    Args:
        backend: Storage backend type (memory, sqlite, postgresql)
        **kwargs: Backend-specific parameters

    Returns:
        Initialized document store
    """
    cache_key = f"{backend}:{json.dumps(kwargs, sort_keys=True, default=str)}"

    if cache_key not in _store_instances:
        if backend == "memory":
            store: DocumentStore = InMemoryDocumentStore()
        elif backend in ("sqlite", "postgresql"):
            connection_string = kwargs.get("connection_string")
            if not connection_string:
                raise ValueError(f"connection_string is required for {backend} backend")
            store = SQLDocumentStore(connection_string)
        else:
            raise ValueError(f"Unknown document store backend: {backend}")

        await store.initialize()
        _store_instances[cache_key] = store

    return _store_instances[cache_key]


__all__ = [
    # Interface
    "DocumentStore",
    "Subscription",
    "get_document_store",
    # Backends
    "InMemoryDocumentStore",
    "SQLDocumentStore",
    # Models
    "DocumentSnapshot",
    "FieldFilter",
    "SERVER_TIMESTAMP",
    "where",
    "utc_now",
    "collections",
    # Exceptions
    "DocumentStoreError",
    "DocumentNotFound",
    "StoreNotInitialized",
    "StoreUnavailable",
]
