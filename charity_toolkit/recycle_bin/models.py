"""
Data models for the recycle bin.

A held record is the bin's copy of a deleted document together with the
provenance needed to put it back. Field aliases are the names stored in the
holding collection.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..document_store.models import DocumentSnapshot, utc_now

RETENTION_DAYS = 7


class RecycleItemKind(str, Enum):
    """Classification of held records, used to pick a restore policy."""

    PAYMENT = "payment"
    USER = "user"
    PROJECT = "project"
    OTHER = "other"
    YEAR_CONFIG_REMOVED = "year_config_removed"
    MONTH_CONFIG_REMOVED = "month_config_removed"


# Wire names of the fields HeldRecord models explicitly
_KNOWN_FIELDS = {
    "originalId",
    "originalCollection",
    "data",
    "deletedAt",
    "deletedBy",
    "type",
    "name",
    "batchId",
}


class HeldRecord(BaseModel):
    """One entry of the holding collection."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Id assigned by the store to the holding entry")
    original_id: str = Field(..., alias="originalId")
    original_collection: str = Field(..., alias="originalCollection")
    snapshot: Dict[str, Any] = Field(
        default_factory=dict,
        alias="data",
        description="Full field map of the record at delete time",
    )
    deleted_at: Optional[datetime] = Field(None, alias="deletedAt")
    deleted_by: str = Field("admin", alias="deletedBy")
    kind: RecycleItemKind = Field(..., alias="type")
    display_name: str = Field("", alias="name")
    batch_id: Optional[str] = Field(None, alias="batchId")
    extra: Dict[str, Any] = Field(
        default_factory=dict, description="Further provenance stored alongside"
    )

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "HeldRecord":
        """Build a held record from a holding-collection document."""
        data = snapshot.to_dict()
        extra = {k: v for k, v in data.items() if k not in _KNOWN_FIELDS}
        known = {k: v for k, v in data.items() if k in _KNOWN_FIELDS}
        return cls(id=snapshot.id, extra=extra, **known)

    def days_remaining(
        self, retention_days: int = RETENTION_DAYS, now: Optional[datetime] = None
    ) -> int:
        """
        Days left before the retention sweep may remove this record.

        Presentation only; the sweep applies its own cutoff.

        Args:
            retention_days: Length of the retention window
            now: Reference time, defaults to UTC now

        Returns:
            Whole days remaining, negative once overdue
        """
        if self.deleted_at is None:
            return retention_days
        elapsed = (now or utc_now()) - self.deleted_at
        return retention_days - elapsed.days

    def summary(self) -> Dict[str, Any]:
        """Flat view used by listings and exports."""
        return {
            "id": self.id,
            "type": self.kind.value,
            "name": self.display_name,
            "original_collection": self.original_collection,
            "original_id": self.original_id,
            "deleted_by": self.deleted_by,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "batch_id": self.batch_id,
        }


class RestoreResult(BaseModel):
    """Outcome of a successful restore."""

    held_id: str = Field(..., description="Held record the restore was issued for")
    kind: RecycleItemKind
    restored_ids: List[str] = Field(
        default_factory=list,
        description="Held records removed from the bin, the requested one first",
    )
    purged_payment_ids: List[str] = Field(
        default_factory=list,
        description="Aggregated stand-in payments deleted by a user restore",
    )
    config_reapplied: bool = Field(
        False, description="Whether a settings change was re-applied"
    )

    @property
    def total_restored(self) -> int:
        return len(self.restored_ids)
