"""
Service layer for the recycle bin.

Turns destructive deletes into reversible ones: the deleted document is
copied into the holding collection before the original is removed, and can
later be replayed to where it came from or discarded for good.
"""

import inspect
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..config import CharityConfig, get_config
from ..document_store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Subscription,
    StoreUnavailable,
    collections,
    where,
)
from .exceptions import PartialBatchFailure, RecordNotFound
from .models import HeldRecord, RecycleItemKind, RestoreResult
from .policies import CollectionSettings, policy_for

logger = logging.getLogger(__name__)

HeldRecordCallback = Callable[[List[HeldRecord]], Union[None, Awaitable[None]]]


class RecycleBinService:
    """
    Soft-delete ledger and restore/purge reconciler.

    No locking is done here. Two callers restoring the same held record race
    on the store; whoever reads it second gets ``RecordNotFound``.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[CollectionSettings] = None,
        activity_log: Optional[Any] = None,
        config: Optional[CharityConfig] = None,
        bin_collection: str = collections.RECYCLE_BIN,
    ):
        """
        Initialize the recycle bin service.

        Args:
            store: Document store holding both the live and the held records
            settings: Settings service used to re-apply removed collection
                years and months
            activity_log: Optional activity log service for incomplete restores
            config: Toolkit configuration, defaults to the global one
            bin_collection: Name of the holding collection
        """
        self.store = store
        self.settings = settings
        self.activity_log = activity_log
        self.config = config or get_config()
        self.bin_collection = bin_collection

    @property
    def retention_days(self) -> int:
        return self.config.recycle_retention_days

    @property
    def default_actor(self) -> str:
        return self.config.default_actor

    @staticmethod
    def _coerce_kind(kind: Union[str, RecycleItemKind]) -> RecycleItemKind:
        try:
            return RecycleItemKind(kind)
        except ValueError:
            valid = ", ".join(k.value for k in RecycleItemKind)
            raise ValueError(
                f"Unknown item kind {kind!r}; expected one of: {valid}"
            ) from None

    async def soft_delete(
        self,
        original_collection: str,
        original_id: str,
        kind: Union[str, RecycleItemKind],
        display_name: str,
        deleted_by: Optional[str] = None,
        batch_id: Optional[str] = None,
        additional_data: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Move a document into the recycle bin.

        The held copy is written before the original is deleted, so a failed
        hold never loses data. If the delete fails after the hold succeeded
        the error propagates and both copies exist.

        Args:
            original_collection: Collection of the document to delete
            original_id: Id of the document to delete
            kind: Restore classification of the document
            display_name: Label shown in the bin
            deleted_by: Acting user, defaults to the configured actor
            batch_id: Groups records that must be restored together
            additional_data: Extra provenance fields stored on the held record

        Returns:
            Id of the new held record

        Raises:
            RecordNotFound: The document does not exist; nothing was written
            ValueError: Unknown kind
            StoreUnavailable: A store call failed
        """
        item_kind = self._coerce_kind(kind)

        source = await self.store.get(original_collection, original_id)
        if source is None:
            logger.warning(
                "Soft delete skipped: %s/%s not found", original_collection, original_id
            )
            raise RecordNotFound(original_id, original_collection)

        entry: Dict[str, Any] = dict(additional_data or {})
        entry.update(
            {
                "originalId": original_id,
                "originalCollection": original_collection,
                "data": source.to_dict(),
                "deletedAt": SERVER_TIMESTAMP,
                "deletedBy": deleted_by or self.default_actor,
                "type": item_kind.value,
                "name": display_name,
            }
        )
        if batch_id:
            entry["batchId"] = batch_id

        held_id = await self.store.add(self.bin_collection, entry)

        try:
            await self.store.delete(original_collection, original_id)
        except Exception:
            logger.warning(
                "Held record %s written but %s/%s was not deleted; both copies exist",
                held_id,
                original_collection,
                original_id,
            )
            raise

        logger.info(
            "Moved %s/%s to recycle bin as %s", original_collection, original_id, held_id
        )
        return held_id

    async def log_system_action(
        self,
        display_name: str,
        description: str,
        kind: Union[str, RecycleItemKind] = RecycleItemKind.OTHER,
        additional_data: Optional[Dict[str, Any]] = None,
        batch_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Record an action that left no document behind to restore.

        Used for configuration removals such as dropping a collection year.
        A ``data`` mapping inside ``additional_data`` is merged into the held
        snapshot; every other key is stored as provenance. Failures are
        logged and swallowed.

        Returns:
            Id of the held record, or None if it could not be written
        """
        item_kind = self._coerce_kind(kind)
        extra = dict(additional_data or {})
        snapshot: Dict[str, Any] = {"description": description}
        snapshot.update(extra.pop("data", None) or {})

        entry: Dict[str, Any] = extra
        entry.update(
            {
                "originalId": f"system-action-{int(self.store.clock().timestamp() * 1000)}",
                "originalCollection": collections.SYSTEM_LOGS,
                "data": snapshot,
                "deletedAt": SERVER_TIMESTAMP,
                "deletedBy": self.default_actor,
                "type": item_kind.value,
                "name": display_name,
            }
        )
        if batch_id:
            entry["batchId"] = batch_id

        try:
            return await self.store.add(self.bin_collection, entry)
        except Exception:
            logger.exception("Log system action failed: %s", display_name)
            return None

    async def get_item(self, held_id: str) -> HeldRecord:
        """
        Fetch one held record.

        Raises:
            RecordNotFound: No such held record
        """
        doc = await self.store.get(self.bin_collection, held_id)
        if doc is None:
            raise RecordNotFound(held_id, self.bin_collection)
        return HeldRecord.from_snapshot(doc)

    async def restore(self, held_id: str, actor: Optional[str] = None) -> RestoreResult:
        """
        Put a held record back where it came from.

        Users and configuration removals also bring back every held record
        sharing their batch id. The requested held record is removed last.

        Args:
            held_id: Id of the held record
            actor: Who asked for the restore, recorded if a batch stops halfway

        Returns:
            What was restored and purged

        Raises:
            RecordNotFound: No such held record
            PartialBatchFailure: The batch cascade stopped partway
            StoreUnavailable: A store call failed
        """
        record = await self.get_item(held_id)
        policy = policy_for(
            record.kind,
            self.store,
            settings=self.settings,
            bin_collection=self.bin_collection,
        )

        try:
            result = await policy.restore(record)
        except PartialBatchFailure as e:
            logger.warning(
                "Restore of %s incomplete: %d record(s) of batch %s restored, "
                "failed at %s; manual reconciliation needed",
                held_id,
                len(e.restored_ids),
                e.batch_id,
                e.failed_id,
            )
            await self._record_activity(
                actor,
                "Restore Incomplete",
                f"Restore of {record.display_name} ({held_id}) stopped in batch "
                f"{e.batch_id} at {e.failed_id}; restored: "
                f"{', '.join(e.restored_ids) or 'none'}",
            )
            raise

        await self.store.delete(self.bin_collection, held_id)
        result.restored_ids.insert(0, held_id)

        logger.info(
            "Restored %s (%s) with %d batch record(s)",
            held_id,
            record.kind.value,
            len(result.restored_ids) - 1,
        )
        return result

    async def permanent_delete(self, held_id: str) -> None:
        """
        Discard a held record for good.

        Batch siblings are left alone.
        """
        await self.store.delete(self.bin_collection, held_id)
        logger.info("Permanently deleted held record %s", held_id)

    async def empty_bin(self) -> int:
        """
        Permanently delete every held record.

        Returns:
            Number of held records deleted
        """
        docs = await self.store.query(self.bin_collection)
        for doc in docs:
            await self.permanent_delete(doc.id)
        return len(docs)

    async def cleanup_old_items(self) -> int:
        """
        Purge held records older than the retention window.

        Everything deleted at or before ``now - retention_days`` is removed
        in one batched write. Safe to call repeatedly.

        Returns:
            Number of held records removed
        """
        cutoff = self.store.clock() - timedelta(days=self.retention_days)
        expired = await self.store.query(
            self.bin_collection, filters=[where("deletedAt", "<=", cutoff)]
        )
        if not expired:
            return 0

        removed = await self.store.delete_batch(
            (self.bin_collection, doc.id) for doc in expired
        )
        logger.info("Cleaned up %d old recycle bin items", removed)
        return removed

    async def list_items(self) -> List[HeldRecord]:
        """All held records, most recently deleted first."""
        docs = await self.store.query(
            self.bin_collection, order_by="deletedAt", descending=True
        )
        return [HeldRecord.from_snapshot(doc) for doc in docs]

    async def batch_members(self, batch_id: str) -> List[HeldRecord]:
        """Held records currently sharing a batch id."""
        docs = await self.store.query(
            self.bin_collection, filters=[where("batchId", "==", batch_id)]
        )
        return [HeldRecord.from_snapshot(doc) for doc in docs]

    async def watch(
        self, callback: HeldRecordCallback, cleanup: Optional[bool] = None
    ) -> Subscription:
        """
        Follow the bin live, most recently deleted first.

        Args:
            callback: Receives the full list of held records on every change
            cleanup: Sweep expired records first; defaults to
                ``config.cleanup_on_view``

        Returns:
            Subscription handle
        """
        if cleanup is None:
            cleanup = self.config.cleanup_on_view
        if cleanup:
            try:
                await self.cleanup_old_items()
            except StoreUnavailable:
                # The view still opens; the next visit retries the sweep
                logger.exception("Recycle bin cleanup failed")

        async def deliver(docs: List[DocumentSnapshot]) -> None:
            result = callback([HeldRecord.from_snapshot(doc) for doc in docs])
            if inspect.isawaitable(result):
                await result

        return await self.store.subscribe(
            self.bin_collection, deliver, order_by="deletedAt", descending=True
        )

    async def _record_activity(
        self, actor: Optional[str], action: str, details: str
    ) -> None:
        if self.activity_log is None:
            return
        who = actor or self.default_actor
        await self.activity_log.log_activity(who, who, action, details)
