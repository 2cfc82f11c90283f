"""Exceptions for recycle bin operations."""

from typing import List, Optional, Sequence

from ..document_store.exceptions import StoreUnavailable


class RecycleBinError(Exception):
    """Base exception for recycle bin operations."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        self.record_id = record_id
        super().__init__(message)


class RecordNotFound(RecycleBinError):
    """Raised when the original or held record does not exist."""

    def __init__(self, record_id: str, collection: str):
        self.collection = collection
        super().__init__(
            f"Record {record_id} not found in {collection}", record_id=record_id
        )


class PartialBatchFailure(StoreUnavailable):
    """Raised when a cascade restore stops partway through its batch.

    Held records listed in ``restored_ids`` were already replayed and
    removed from the bin; nothing is rolled back.
    """

    def __init__(
        self,
        held_id: str,
        batch_id: str,
        restored_ids: Sequence[str],
        failed_id: Optional[str],
    ):
        self.held_id = held_id
        self.batch_id = batch_id
        self.restored_ids: List[str] = list(restored_ids)
        self.failed_id = failed_id
        super().__init__(
            f"Restore of {held_id} stopped in batch {batch_id} after "
            f"{len(self.restored_ids)} record(s); failed at {failed_id}"
        )
