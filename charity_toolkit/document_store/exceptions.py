"""Exceptions raised by document store backends."""

from typing import Optional


class DocumentStoreError(Exception):
    """Base exception for document store operations."""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        doc_id: Optional[str] = None,
    ):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(message)


class StoreUnavailable(DocumentStoreError):
    """Raised when an underlying store call fails.

    Network, permission and quota problems all surface as this single
    condition; the original error is chained as ``__cause__``.
    """


class StoreNotInitialized(DocumentStoreError):
    """Raised when a backend is used before ``initialize()`` was awaited."""

    def __init__(self) -> None:
        super().__init__("Document store not initialized. Call initialize() first.")


class DocumentNotFound(DocumentStoreError):
    """Raised when an update targets a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(
            f"Document {doc_id} not found in {collection}",
            collection=collection,
            doc_id=doc_id,
        )
