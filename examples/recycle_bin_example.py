#!/usr/bin/env python3
"""
Recycle Bin Example - Charity Python Toolkit

Demonstrates reversible deletes in the back office:
- Soft deleting a single payment and restoring it
- Removing a member together with their payments
- Removing a collection year and bringing it back
- The seven-day retention sweep
"""

import asyncio
from datetime import datetime, timedelta, timezone

from charity_toolkit import (
    ActivityLogService,
    CharityConfig,
    FinanceService,
    InMemoryDocumentStore,
    RecycleBinService,
    SettingsService,
)


class DemoClock:
    """Clock the demo can move forward."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


async def demonstrate_recycle_bin() -> None:
    """Walk through the main recycle bin operations."""
    print("🗑️  Recycle Bin Example\n")

    clock = DemoClock()
    store = InMemoryDocumentStore(clock=clock)
    settings = SettingsService(store)
    activity_log = ActivityLogService(store)
    recycle_bin = RecycleBinService(
        store,
        settings=settings,
        activity_log=activity_log,
        config=CharityConfig(environment="development", store_backend="memory"),
    )
    finance = FinanceService(store, recycle_bin, settings, activity_log)

    # 1. Test data
    print("1️⃣ Creating Test Data:")
    await store.set("users", "U1", {"name": "Rahim", "phone": "01711000000"})
    for month in (1, 2, 3):
        await store.set(
            "payments",
            f"P{month}",
            {
                "userId": "U1",
                "memberName": "Rahim",
                "type": "monthly",
                "amount": 500,
                "year": 2024,
                "month": month,
            },
        )
    print("  ✓ Created member Rahim with 3 monthly payments\n")

    # 2. Single payment
    print("2️⃣ Soft Deleting a Payment:")
    held_id = await finance.delete_payment("P1", "Jan Dues — Rahim", actor="karim")
    print(f"  ✓ Payment P1 moved to the bin as {held_id}")
    await recycle_bin.restore(held_id)
    print(f"  ✓ Restored; P1 exists again: {await store.get('payments', 'P1') is not None}\n")

    # 3. Member with history
    print("3️⃣ Removing a Member:")
    outcome = await finance.delete_member(
        "U1", "Rahim", actor="karim", preserve_history=True
    )
    print(f"  ✓ Batch {outcome['batch_id']} holds {len(outcome['held_ids'])} records")
    print(f"  ✓ Aggregate payment written: {outcome['aggregate_payment_id']}")
    result = await recycle_bin.restore(outcome["held_ids"][0], actor="karim")
    print(f"  ✓ Restored {result.total_restored} records")
    print(f"  ✓ Aggregate payments removed: {len(result.purged_payment_ids)}\n")

    # 4. Collection year
    print("4️⃣ Removing Collection Year 2024:")
    removal = await finance.remove_collection_year(2024, actor="karim")
    print(f"  ✓ {removal['count']} monthly payments moved to the bin")
    await recycle_bin.restore(removal["log_id"])
    years = (await settings.get_settings()).collection_years
    print(f"  ✓ Year restored, configured years: {years}\n")

    # 5. Retention
    print("5️⃣ Retention Sweep:")
    await finance.delete_payment("P2", "Feb Dues — Rahim")
    for item in await recycle_bin.list_items():
        print(f"  - {item.display_name}: {item.days_remaining(now=clock.now)} days left")
    clock.now += timedelta(days=7)
    removed = await recycle_bin.cleanup_old_items()
    print(f"  ✓ Swept {removed} expired item(s) after 7 days\n")

    print("📋 Activity Log:")
    for entry in await activity_log.recent(limit=5):
        print(f"  - {entry.action}: {entry.details}")


if __name__ == "__main__":
    asyncio.run(demonstrate_recycle_bin())
