"""
Finance and membership operations that delete through the recycle bin.

Every destructive action here soft-deletes instead of deleting. Actions
that remove several records at once tag them with one batch id so that a
single restore brings all of them back.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from .activity_log import ActivityLogService
from .document_store import SERVER_TIMESTAMP, DocumentStore, collections, where
from .recycle_bin import RecycleBinService, RecycleItemKind
from .settings import SettingsService

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]  # fmt: skip


def new_batch_id(prefix: str = "batch") -> str:
    """Identifier shared by records deleted as one unit."""
    return f"{prefix}-{uuid.uuid4().hex}"


class FinanceService:
    """Payment, expense and member removal for the admin back office."""

    def __init__(
        self,
        store: DocumentStore,
        recycle_bin: RecycleBinService,
        settings: SettingsService,
        activity_log: Optional[ActivityLogService] = None,
    ):
        self.store = store
        self.recycle_bin = recycle_bin
        self.settings = settings
        self.activity_log = activity_log

    async def _log(self, actor: Optional[str], action: str, details: str) -> None:
        if self.activity_log is None or not actor:
            return
        await self.activity_log.log_activity(actor, actor, action, details)

    async def delete_payment(
        self,
        payment_id: str,
        name: str = "Payment",
        actor: Optional[str] = None,
        batch_id: Optional[str] = None,
    ) -> str:
        """
        Move a payment to the recycle bin.

        Returns:
            Id of the held record
        """
        held_id = await self.recycle_bin.soft_delete(
            collections.PAYMENTS,
            payment_id,
            RecycleItemKind.PAYMENT,
            name,
            deleted_by=actor,
            batch_id=batch_id,
        )
        await self._log(actor, "Delete Payment", f"Removed payment ID {payment_id} ({name})")
        return held_id

    async def delete_expense(
        self, expense_id: str, name: str = "Expense", actor: Optional[str] = None
    ) -> str:
        """Move an expense to the recycle bin."""
        held_id = await self.recycle_bin.soft_delete(
            collections.EXPENSES,
            expense_id,
            RecycleItemKind.OTHER,
            name,
            deleted_by=actor,
        )
        await self._log(actor, "Delete Expense", f"Removed expense ID {expense_id} ({name})")
        return held_id

    async def delete_member(
        self,
        user_id: str,
        name: str,
        actor: Optional[str] = None,
        preserve_history: bool = False,
    ) -> Dict[str, Any]:
        """
        Remove a member together with their payments.

        The user and each of their payments go to the bin under one batch
        id. With ``preserve_history`` a single one-time payment carrying the
        summed amount is written in their place, tagged ``linkedBatchId`` so
        that restoring the user removes it again.

        Returns:
            Batch id, held record ids and the aggregate payment id (if any)

        Raises:
            RecordNotFound: The user does not exist; nothing was changed
        """
        batch_id = new_batch_id("batch-user")
        payments = await self.store.query(
            collections.PAYMENTS, filters=[where("userId", "==", user_id)]
        )

        user_held_id = await self.recycle_bin.soft_delete(
            collections.USERS,
            user_id,
            RecycleItemKind.USER,
            name,
            deleted_by=actor,
            batch_id=batch_id,
        )

        held_ids = [user_held_id]
        for payment in payments:
            held_ids.append(
                await self.recycle_bin.soft_delete(
                    collections.PAYMENTS,
                    payment.id,
                    RecycleItemKind.PAYMENT,
                    self._payment_label(payment.data, name),
                    deleted_by=actor,
                    batch_id=batch_id,
                )
            )

        aggregate_id = None
        if preserve_history and payments:
            total = sum(p.data.get("amount", 0) or 0 for p in payments)
            aggregate_id = await self.store.add(
                collections.PAYMENTS,
                {
                    "memberName": name,
                    "type": "one-time",
                    "amount": total,
                    "date": SERVER_TIMESTAMP,
                    "createdAt": SERVER_TIMESTAMP,
                    "notes": f"Preserved contributions of removed member {name}",
                    "linkedBatchId": batch_id,
                },
            )

        logger.info(
            "Removed member %s with %d payment(s) under batch %s",
            user_id,
            len(payments),
            batch_id,
        )
        await self._log(
            actor,
            "Delete Member",
            f"Removed member {name} ({user_id}) and {len(payments)} payment(s)",
        )
        return {
            "batch_id": batch_id,
            "held_ids": held_ids,
            "aggregate_payment_id": aggregate_id,
        }

    async def remove_collection_year(
        self, year: int, actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Drop a collection year and every monthly payment recorded for it.

        Returns:
            Batch id, number of payments removed and the system log entry id
        """
        batch_id = new_batch_id("batch")
        payments = await self._monthly_payments(year)

        for payment in payments:
            await self.delete_payment(
                payment.id, f"Monthly: Year {year}", actor=actor, batch_id=batch_id
            )
        await self.settings.remove_collection_year(year)

        log_id = await self.recycle_bin.log_system_action(
            f"Year {year} Configuration",
            f"Removed configuration for year {year} and {len(payments)} payments.",
            RecycleItemKind.YEAR_CONFIG_REMOVED,
            {"year": year, "count": len(payments), "data": {"year": year}},
            batch_id=batch_id,
        )
        logger.info("Removed collection year %s with %d payment(s)", year, len(payments))
        await self._log(actor, "Remove Year", f"Removed collection year {year}")
        return {"batch_id": batch_id, "count": len(payments), "log_id": log_id}

    async def disable_collection_month(
        self, year: int, month: int, actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Stop collecting for one month, removing its monthly payments.

        The configuration change is only recorded in the bin when payments
        were actually removed.
        """
        month_name = MONTH_NAMES[month - 1] if 1 <= month <= 12 else str(month)
        batch_id = new_batch_id("batch-month")
        payments = await self._monthly_payments(year, month)

        for payment in payments:
            await self.delete_payment(
                payment.id,
                f"Monthly: {month_name} {year}",
                actor=actor,
                batch_id=batch_id,
            )
        active = await self.settings.toggle_collection_month(year, month, False)

        log_id = None
        if payments:
            log_id = await self.recycle_bin.log_system_action(
                f"{month_name} {year} Configuration",
                f"Disabled month {month_name} {year} and removed "
                f"{len(payments)} payments.",
                RecycleItemKind.MONTH_CONFIG_REMOVED,
                {
                    "year": year,
                    "month": month,
                    "count": len(payments),
                    "data": {"year": year, "month": month},
                },
                batch_id=batch_id,
            )
        await self._log(actor, "Disable Month", f"Disabled {month_name} {year}")
        return {
            "batch_id": batch_id,
            "count": len(payments),
            "log_id": log_id,
            "active_months": active,
        }

    async def enable_collection_month(self, year: int, month: int) -> List[int]:
        """Resume collecting for a month. Nothing is restored."""
        return await self.settings.toggle_collection_month(year, month, True)

    async def _monthly_payments(self, year: int, month: Optional[int] = None) -> List[Any]:
        filters = [where("type", "==", "monthly"), where("year", "==", year)]
        if month is not None:
            filters.append(where("month", "==", month))
        return await self.store.query(collections.PAYMENTS, filters=filters)

    @staticmethod
    def _payment_label(data: Dict[str, Any], member_name: str) -> str:
        if data.get("type") == "monthly" and data.get("month") and data.get("year"):
            month = int(data["month"])
            if 1 <= month <= 12:
                return f"{MONTH_NAMES[month - 1]} {data['year']} Dues — {member_name}"
        return f"Payment — {member_name}"
