"""
Restore policies for held records.

Each ``RecycleItemKind`` maps to exactly one policy. Policies replay held
records to their origin; the service deletes the requested held record once
its policy has finished.

Batch members are never stored as a list on the held record. They are found
by querying the holding collection for the shared ``batchId`` every time a
cascade runs.
"""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Dict, FrozenSet, List, Optional, Protocol, Type

from ..document_store import DocumentStore, collections, where
from .exceptions import PartialBatchFailure, RecycleBinError
from .models import HeldRecord, RecycleItemKind, RestoreResult

logger = logging.getLogger(__name__)


class CollectionSettings(Protocol):
    """The part of the settings service config restores depend on."""

    async def add_collection_year(self, year: int) -> List[int]: ...

    async def toggle_collection_month(
        self, year: int, month: int, enabled: bool
    ) -> List[int]: ...


class RestorePolicy(ABC):
    """Base class for kind-specific restore behaviour."""

    kinds: ClassVar[FrozenSet[RecycleItemKind]] = frozenset()

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[CollectionSettings] = None,
        bin_collection: str = collections.RECYCLE_BIN,
    ):
        self.store = store
        self.settings = settings
        self.bin_collection = bin_collection

    @abstractmethod
    async def restore(self, record: HeldRecord) -> RestoreResult:
        """
        Put a held record (and whatever it drags along) back in place.

        The requested held record itself is left in the bin.

        Args:
            record: Held record being restored

        Returns:
            Restore outcome; ``restored_ids`` lists cascaded siblings only
        """
        pass

    async def replay(self, record: HeldRecord) -> None:
        """Overwrite the original location with the captured snapshot."""
        await self.store.set(
            record.original_collection, record.original_id, dict(record.snapshot)
        )

    async def restore_batch(self, record: HeldRecord) -> List[str]:
        """
        Replay and remove every other held record sharing the batch id.

        Siblings are handled one at a time in the order the store returns
        them; the first failure stops the cascade.

        Returns:
            Ids of the sibling held records that were restored

        Raises:
            PartialBatchFailure: A sibling could not be restored
        """
        if not record.batch_id:
            return []

        siblings = await self.store.query(
            self.bin_collection, filters=[where("batchId", "==", record.batch_id)]
        )

        restored: List[str] = []
        for doc in siblings:
            if doc.id == record.id:
                continue
            try:
                sibling = HeldRecord.from_snapshot(doc)
                await self.replay(sibling)
                await self.store.delete(self.bin_collection, doc.id)
            except Exception as e:
                raise PartialBatchFailure(
                    held_id=record.id,
                    batch_id=record.batch_id,
                    restored_ids=restored,
                    failed_id=doc.id,
                ) from e
            restored.append(doc.id)

        logger.debug(
            "Restored %d record(s) of batch %s", len(restored), record.batch_id
        )
        return restored

    def require_settings(self, record: HeldRecord) -> CollectionSettings:
        if self.settings is None:
            raise RecycleBinError(
                f"Restoring {record.kind.value} requires a settings service",
                record_id=record.id,
            )
        return self.settings


class StandardRestore(RestorePolicy):
    """Replay the snapshot, nothing else."""

    kinds = frozenset(
        {RecycleItemKind.PAYMENT, RecycleItemKind.PROJECT, RecycleItemKind.OTHER}
    )

    async def restore(self, record: HeldRecord) -> RestoreResult:
        await self.replay(record)
        return RestoreResult(held_id=record.id, kind=record.kind)


class UserRestore(RestorePolicy):
    """Restore a user with their batch-deleted payments.

    Aggregated payments written to stand in for the user's history
    (``linkedBatchId`` == batch id) are deleted for good, since the real
    payments come back.
    """

    kinds = frozenset({RecycleItemKind.USER})

    async def restore(self, record: HeldRecord) -> RestoreResult:
        await self.replay(record)
        result = RestoreResult(held_id=record.id, kind=record.kind)

        if not record.batch_id:
            return result

        result.restored_ids = await self.restore_batch(record)

        aggregates = await self.store.query(
            collections.PAYMENTS,
            filters=[where("linkedBatchId", "==", record.batch_id)],
        )
        for payment in aggregates:
            try:
                await self.store.delete(collections.PAYMENTS, payment.id)
            except Exception as e:
                raise PartialBatchFailure(
                    held_id=record.id,
                    batch_id=record.batch_id,
                    restored_ids=result.restored_ids,
                    failed_id=payment.id,
                ) from e
            result.purged_payment_ids.append(payment.id)

        if result.purged_payment_ids:
            logger.info(
                "Removed %d aggregated payment(s) linked to batch %s",
                len(result.purged_payment_ids),
                record.batch_id,
            )
        return result


class YearConfigRestore(RestorePolicy):
    """Re-add a removed collection year and its payments."""

    kinds = frozenset({RecycleItemKind.YEAR_CONFIG_REMOVED})

    async def restore(self, record: HeldRecord) -> RestoreResult:
        result = RestoreResult(held_id=record.id, kind=record.kind)

        year = record.snapshot.get("year")
        if year:
            await self.require_settings(record).add_collection_year(int(year))
            result.config_reapplied = True
        else:
            logger.warning("Held record %s carries no year to re-add", record.id)

        result.restored_ids = await self.restore_batch(record)
        return result


class MonthConfigRestore(RestorePolicy):
    """Re-enable a disabled collection month and its payments."""

    kinds = frozenset({RecycleItemKind.MONTH_CONFIG_REMOVED})

    async def restore(self, record: HeldRecord) -> RestoreResult:
        result = RestoreResult(held_id=record.id, kind=record.kind)

        year = record.snapshot.get("year")
        month = record.snapshot.get("month")
        if year and month:
            await self.require_settings(record).toggle_collection_month(
                int(year), int(month), True
            )
            result.config_reapplied = True
        else:
            logger.warning("Held record %s carries no year/month to re-enable", record.id)

        result.restored_ids = await self.restore_batch(record)
        return result


POLICY_CLASSES = (StandardRestore, UserRestore, YearConfigRestore, MonthConfigRestore)

POLICY_BY_KIND: Dict[RecycleItemKind, Type[RestorePolicy]] = {
    kind: policy for policy in POLICY_CLASSES for kind in policy.kinds
}

_unhandled = set(RecycleItemKind) - set(POLICY_BY_KIND)
if _unhandled:
    raise RuntimeError(
        f"No restore policy for: {', '.join(sorted(k.value for k in _unhandled))}"
    )


def policy_for(
    kind: RecycleItemKind,
    store: DocumentStore,
    settings: Optional[CollectionSettings] = None,
    bin_collection: str = collections.RECYCLE_BIN,
) -> RestorePolicy:
    """Instantiate the restore policy handling ``kind``."""
    try:
        policy_class = POLICY_BY_KIND[RecycleItemKind(kind)]
    except (KeyError, ValueError):
        raise ValueError(f"No restore policy for kind {kind!r}") from None
    return policy_class(store, settings=settings, bin_collection=bin_collection)
