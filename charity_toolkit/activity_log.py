"""
Admin activity log.

Keeps a short rolling history of what admins did. Logging never blocks the
action being logged: write failures are reported through ``logging`` and
otherwise ignored.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .document_store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, collections

logger = logging.getLogger(__name__)

MAX_LOGS = 100


class ActivityLog(BaseModel):
    """One entry of the activity log."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    admin_id: str = Field(..., alias="adminId")
    admin_name: str = Field(..., alias="adminName")
    action: str
    details: str = ""
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "ActivityLog":
        return cls(id=snapshot.id, **snapshot.to_dict())


class ActivityLogService:
    """Writes and reads the ``activity_logs`` collection."""

    def __init__(self, store: DocumentStore, max_logs: int = MAX_LOGS):
        """
        Args:
            store: Document store
            max_logs: Number of newest entries kept after each write
        """
        if max_logs < 1:
            raise ValueError("max_logs must be at least 1")
        self.store = store
        self.max_logs = max_logs

    async def log_activity(
        self, admin_id: str, admin_name: str, action: str, details: str
    ) -> Optional[str]:
        """
        Record an admin action and prune entries beyond ``max_logs``.

        Returns:
            Id of the new entry, or None if logging failed
        """
        entry: Dict[str, Any] = {
            "adminId": admin_id,
            "adminName": admin_name,
            "action": action,
            "details": details,
            "createdAt": SERVER_TIMESTAMP,
        }
        try:
            entry_id = await self.store.add(collections.ACTIVITY_LOGS, entry)

            docs = await self.store.query(
                collections.ACTIVITY_LOGS, order_by="createdAt", descending=True
            )
            if len(docs) > self.max_logs:
                await self.store.delete_batch(
                    (collections.ACTIVITY_LOGS, doc.id) for doc in docs[self.max_logs :]
                )
            return entry_id
        except Exception:
            logger.exception("Failed to log activity %r for %s", action, admin_id)
            return None

    async def recent(self, limit: Optional[int] = None) -> List[ActivityLog]:
        """Newest entries first."""
        docs = await self.store.query(
            collections.ACTIVITY_LOGS, order_by="createdAt", descending=True, limit=limit
        )
        return [ActivityLog.from_snapshot(doc) for doc in docs]
