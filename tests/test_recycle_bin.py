"""
Tests for the recycle bin.

Covers the soft-delete ledger, restore policies with their batch
cascades, permanent deletion and the retention sweep.
"""

from datetime import datetime, timezone

import pytest

from charity_toolkit.config import CharityConfig
from charity_toolkit.document_store import StoreUnavailable, where
from charity_toolkit.recycle_bin import (
    HeldRecord,
    PartialBatchFailure,
    RecordNotFound,
    RecycleBinError,
    RecycleBinService,
    RecycleItemKind,
    StandardRestore,
    UserRestore,
    policy_for,
)
from charity_toolkit.recycle_bin.policies import POLICY_BY_KIND


async def add_user_with_payments(store, user_id="U1", amounts=(500, 500, 500)):
    await store.set("users", user_id, {"name": "Rahim", "phone": "01711000000"})
    payment_ids = []
    for i, amount in enumerate(amounts, start=1):
        payment_id = f"{user_id}-P{i}"
        await store.set(
            "payments",
            payment_id,
            {"userId": user_id, "amount": amount, "type": "monthly", "month": i},
        )
        payment_ids.append(payment_id)
    return payment_ids


class TestSoftDelete:
    """Test the soft-delete ledger."""

    @pytest.mark.asyncio
    async def test_jan_dues_scenario(self, store, recycle_bin):
        await store.set(
            "payments",
            "P1",
            {
                "memberName": "Rahim",
                "amount": 500,
                "date": datetime(2024, 1, 10, tzinfo=timezone.utc),
                "type": "monthly",
            },
        )

        held_id = await recycle_bin.soft_delete(
            "payments", "P1", RecycleItemKind.PAYMENT, "Jan Dues — Rahim"
        )

        assert await store.get("payments", "P1") is None
        items = await recycle_bin.list_items()
        assert len(items) == 1
        assert items[0].id == held_id
        assert items[0].kind == RecycleItemKind.PAYMENT
        assert items[0].display_name == "Jan Dues — Rahim"
        assert items[0].snapshot["amount"] == 500

        await recycle_bin.restore(held_id)

        restored = await store.get("payments", "P1")
        assert restored.data["amount"] == 500
        assert await recycle_bin.list_items() == []

    @pytest.mark.asyncio
    async def test_held_record_fields(self, store, recycle_bin, clock):
        await store.set("projects", "PR1", {"title": "Winter Clothes"})

        held_id = await recycle_bin.soft_delete(
            "projects",
            "PR1",
            "project",
            "Winter Clothes",
            deleted_by="karim",
            batch_id="B9",
            additional_data={"reason": "duplicate", "type": "ignored"},
        )

        record = await recycle_bin.get_item(held_id)
        assert record.original_collection == "projects"
        assert record.original_id == "PR1"
        assert record.snapshot == {"title": "Winter Clothes"}
        assert record.deleted_at == clock.now
        assert record.deleted_by == "karim"
        assert record.batch_id == "B9"
        # Core fields win over provenance with the same name
        assert record.kind == RecycleItemKind.PROJECT
        assert record.extra == {"reason": "duplicate"}

    @pytest.mark.asyncio
    async def test_default_actor(self, store, recycle_bin):
        await store.set("expenses", "E1", {"amount": 1200})

        held_id = await recycle_bin.soft_delete("expenses", "E1", "other", "Tent rental")

        record = await recycle_bin.get_item(held_id)
        assert record.deleted_by == "admin"
        assert record.batch_id is None

    @pytest.mark.asyncio
    async def test_missing_source_writes_nothing(self, store, recycle_bin):
        with pytest.raises(RecordNotFound) as exc_info:
            await recycle_bin.soft_delete("payments", "ghost", "payment", "Ghost")

        assert exc_info.value.record_id == "ghost"
        assert store.count("recycle_bin") == 0

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, store, recycle_bin):
        await store.set("payments", "P1", {"amount": 1})

        with pytest.raises(ValueError):
            await recycle_bin.soft_delete("payments", "P1", "invoice", "P1")

        assert await store.get("payments", "P1") is not None
        assert store.count("recycle_bin") == 0

    @pytest.mark.asyncio
    async def test_failed_hold_keeps_original(self, store, recycle_bin, monkeypatch):
        await store.set("payments", "P1", {"amount": 500})

        async def failing_add(collection, data):
            raise StoreUnavailable("permission denied", collection=collection)

        monkeypatch.setattr(store, "add", failing_add)

        with pytest.raises(StoreUnavailable):
            await recycle_bin.soft_delete("payments", "P1", "payment", "P1")

        assert await store.get("payments", "P1") is not None

    @pytest.mark.asyncio
    async def test_failed_delete_leaves_both_copies(
        self, store, recycle_bin, monkeypatch
    ):
        await store.set("payments", "P1", {"amount": 500})

        async def failing_delete(collection, doc_id):
            raise StoreUnavailable("network", collection=collection, doc_id=doc_id)

        monkeypatch.setattr(store, "delete", failing_delete)

        with pytest.raises(StoreUnavailable):
            await recycle_bin.soft_delete("payments", "P1", "payment", "P1")

        assert await store.get("payments", "P1") is not None
        assert store.count("recycle_bin") == 1


class TestLogSystemAction:
    """Test entries for actions with nothing to restore."""

    @pytest.mark.asyncio
    async def test_entry_shape(self, recycle_bin, clock):
        held_id = await recycle_bin.log_system_action(
            "Year 2024 Configuration",
            "Removed configuration for year 2024 and 3 payments.",
            RecycleItemKind.YEAR_CONFIG_REMOVED,
            {"year": 2024, "count": 3, "data": {"year": 2024}},
            batch_id="batch-1",
        )

        record = await recycle_bin.get_item(held_id)
        assert record.kind == RecycleItemKind.YEAR_CONFIG_REMOVED
        assert record.original_collection == "system_logs"
        assert record.original_id == f"system-action-{int(clock.now.timestamp() * 1000)}"
        assert record.snapshot == {
            "description": "Removed configuration for year 2024 and 3 payments.",
            "year": 2024,
        }
        assert record.extra == {"year": 2024, "count": 3}
        assert record.batch_id == "batch-1"

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, store, recycle_bin, monkeypatch):
        async def failing_add(collection, data):
            raise StoreUnavailable("quota exceeded")

        monkeypatch.setattr(store, "add", failing_add)

        assert await recycle_bin.log_system_action("x", "y") is None


class TestRestore:
    """Test restore dispatch and batch cascades."""

    @pytest.mark.asyncio
    async def test_round_trip(self, store, recycle_bin):
        fields = {
            "name": "Rahim",
            "amount": 750,
            "tags": ["zakat", "ramadan"],
            "address": {"city": "Dhaka", "ward": 12},
            "paidAt": datetime(2024, 2, 1, tzinfo=timezone.utc),
        }
        await store.set("payments", "P7", fields)

        held_id = await recycle_bin.soft_delete("payments", "P7", "payment", "P7")
        result = await recycle_bin.restore(held_id)

        assert (await store.get("payments", "P7")).data == fields
        assert await store.get("recycle_bin", held_id) is None
        assert result.restored_ids == [held_id]
        assert result.total_restored == 1

    @pytest.mark.asyncio
    async def test_restore_overwrites_not_merges(self, store, recycle_bin):
        await store.set("payments", "P1", {"amount": 500})
        held_id = await recycle_bin.soft_delete("payments", "P1", "payment", "P1")
        await store.set("payments", "P1", {"amount": 1, "notes": "re-entered"})

        await recycle_bin.restore(held_id)

        assert (await store.get("payments", "P1")).data == {"amount": 500}

    @pytest.mark.asyncio
    async def test_standard_restore_ignores_batch(self, store, recycle_bin):
        await store.set("payments", "P1", {"amount": 1})
        await store.set("payments", "P2", {"amount": 2})
        first = await recycle_bin.soft_delete(
            "payments", "P1", "payment", "P1", batch_id="B1"
        )
        second = await recycle_bin.soft_delete(
            "payments", "P2", "payment", "P2", batch_id="B1"
        )

        await recycle_bin.restore(first)

        assert await store.get("payments", "P2") is None
        assert (await recycle_bin.get_item(second)).batch_id == "B1"

    @pytest.mark.asyncio
    async def test_user_batch_restore(self, store, recycle_bin):
        payment_ids = await add_user_with_payments(store)
        user_held = await recycle_bin.soft_delete(
            "users", "U1", "user", "Rahim", batch_id="B1"
        )
        for payment_id in payment_ids:
            await recycle_bin.soft_delete(
                "payments", payment_id, "payment", payment_id, batch_id="B1"
            )

        result = await recycle_bin.restore(user_held)

        assert await store.get("users", "U1") is not None
        for payment_id in payment_ids:
            assert await store.get("payments", payment_id) is not None
        assert await recycle_bin.batch_members("B1") == []
        assert result.restored_ids[0] == user_held
        assert result.total_restored == 4

    @pytest.mark.asyncio
    async def test_user_restore_purges_linked_aggregate(self, store, recycle_bin):
        payment_ids = await add_user_with_payments(store, amounts=(500, 300))
        user_held = await recycle_bin.soft_delete(
            "users", "U1", "user", "Rahim", batch_id="B1"
        )
        for payment_id in payment_ids:
            await recycle_bin.soft_delete(
                "payments", payment_id, "payment", payment_id, batch_id="B1"
            )
        aggregate_id = await store.add(
            "payments", {"amount": 800, "type": "one-time", "linkedBatchId": "B1"}
        )
        await store.set("payments", "OTHER", {"amount": 5, "linkedBatchId": "B2"})

        result = await recycle_bin.restore(user_held)

        assert await store.get("users", "U1") is not None
        for payment_id in payment_ids:
            assert await store.get("payments", payment_id) is not None
        assert await store.get("payments", aggregate_id) is None
        assert await store.get("payments", "OTHER") is not None
        assert result.purged_payment_ids == [aggregate_id]
        assert await store.query("recycle_bin", filters=[where("batchId", "==", "B1")]) == []

    @pytest.mark.asyncio
    async def test_restore_from_batch_member_cascades_nothing(
        self, store, recycle_bin
    ):
        payment_ids = await add_user_with_payments(store, amounts=(500,))
        await recycle_bin.soft_delete("users", "U1", "user", "Rahim", batch_id="B1")
        payment_held = await recycle_bin.soft_delete(
            "payments", payment_ids[0], "payment", "Jan", batch_id="B1"
        )

        await recycle_bin.restore(payment_held)

        assert await store.get("users", "U1") is None
        assert len(await recycle_bin.batch_members("B1")) == 1

    @pytest.mark.asyncio
    async def test_restore_missing_held_record(self, recycle_bin):
        with pytest.raises(RecordNotFound):
            await recycle_bin.restore("nope")

    @pytest.mark.asyncio
    async def test_second_restore_is_not_found(self, store, recycle_bin):
        await store.set("payments", "P1", {"amount": 500})
        held_id = await recycle_bin.soft_delete("payments", "P1", "payment", "P1")

        await recycle_bin.restore(held_id)
        with pytest.raises(RecordNotFound):
            await recycle_bin.restore(held_id)

    @pytest.mark.asyncio
    async def test_partial_batch_failure(
        self, store, recycle_bin, activity_log, monkeypatch
    ):
        payment_ids = await add_user_with_payments(store)
        user_held = await recycle_bin.soft_delete(
            "users", "U1", "user", "Rahim", batch_id="B1"
        )
        held_payments = [
            await recycle_bin.soft_delete(
                "payments", payment_id, "payment", payment_id, batch_id="B1"
            )
            for payment_id in payment_ids
        ]

        original_set = store.set

        async def flaky_set(collection, doc_id, data, merge=False):
            if doc_id == payment_ids[1]:
                raise StoreUnavailable("quota exceeded", collection, doc_id)
            await original_set(collection, doc_id, data, merge=merge)

        monkeypatch.setattr(store, "set", flaky_set)

        with pytest.raises(PartialBatchFailure) as exc_info:
            await recycle_bin.restore(user_held, actor="karim")

        error = exc_info.value
        assert isinstance(error, StoreUnavailable)
        assert error.batch_id == "B1"
        assert error.restored_ids == [held_payments[0]]
        assert error.failed_id == held_payments[1]
        assert isinstance(error.__cause__, StoreUnavailable)

        # Completed steps stay applied; the rest remain held
        assert await store.get("users", "U1") is not None
        assert await store.get("payments", payment_ids[0]) is not None
        assert await store.get("payments", payment_ids[2]) is None
        remaining = {r.id for r in await recycle_bin.batch_members("B1")}
        assert remaining == {user_held, held_payments[1], held_payments[2]}

        entries = await activity_log.recent()
        assert entries[0].action == "Restore Incomplete"
        assert entries[0].admin_id == "karim"

    @pytest.mark.asyncio
    async def test_year_config_restore(self, store, recycle_bin, settings_service):
        await store.set(
            "payments", "P1", {"type": "monthly", "year": 2024, "month": 1, "amount": 500}
        )
        await settings_service.remove_collection_year(2024)
        await recycle_bin.soft_delete(
            "payments", "P1", "payment", "Monthly: Year 2024", batch_id="batch-y"
        )
        held_id = await recycle_bin.log_system_action(
            "Year 2024 Configuration",
            "Removed configuration for year 2024 and 1 payments.",
            "year_config_removed",
            {"year": 2024, "count": 1, "data": {"year": 2024}},
            batch_id="batch-y",
        )

        result = await recycle_bin.restore(held_id)

        settings = await settings_service.get_settings()
        assert 2024 in settings.collection_years
        assert settings.active_months(2024) == list(range(1, 13))
        assert await store.get("payments", "P1") is not None
        assert await recycle_bin.list_items() == []
        assert result.config_reapplied
        assert result.total_restored == 2

    @pytest.mark.asyncio
    async def test_month_config_restore(self, store, recycle_bin, settings_service):
        await store.set(
            "payments", "P3", {"type": "monthly", "year": 2024, "month": 3, "amount": 500}
        )
        await settings_service.toggle_collection_month(2024, 3, False)
        await recycle_bin.soft_delete(
            "payments", "P3", "payment", "Monthly: Mar 2024", batch_id="batch-m"
        )
        held_id = await recycle_bin.log_system_action(
            "Mar 2024 Configuration",
            "Disabled month Mar 2024 and removed 1 payments.",
            "month_config_removed",
            {"year": 2024, "month": 3, "count": 1, "data": {"year": 2024, "month": 3}},
            batch_id="batch-m",
        )

        await recycle_bin.restore(held_id)

        settings = await settings_service.get_settings()
        assert 3 in settings.active_months(2024)
        assert await store.get("payments", "P3") is not None
        assert await recycle_bin.list_items() == []

    @pytest.mark.asyncio
    async def test_config_restore_without_year(self, recycle_bin, settings_service):
        before = await settings_service.get_settings()
        held_id = await recycle_bin.log_system_action(
            "Broken", "No year recorded", "year_config_removed"
        )

        result = await recycle_bin.restore(held_id)

        assert not result.config_reapplied
        assert await settings_service.get_settings() == before

    @pytest.mark.asyncio
    async def test_config_restore_requires_settings(self, store, test_config):
        recycle_bin = RecycleBinService(store, config=test_config)
        held_id = await recycle_bin.log_system_action(
            "Year 2024 Configuration",
            "Removed",
            "year_config_removed",
            {"data": {"year": 2024}},
        )

        with pytest.raises(RecycleBinError):
            await recycle_bin.restore(held_id)

        assert await store.get("recycle_bin", held_id) is not None


class TestPurge:
    """Test permanent deletion and emptying the bin."""

    @pytest.mark.asyncio
    async def test_purge_independence(self, store, recycle_bin):
        await store.set("payments", "P1", {"amount": 1})
        await store.set("payments", "P2", {"amount": 2})
        first = await recycle_bin.soft_delete(
            "payments", "P1", "payment", "P1", batch_id="B1"
        )
        second = await recycle_bin.soft_delete(
            "payments", "P2", "payment", "P2", batch_id="B1"
        )

        await recycle_bin.permanent_delete(first)

        assert [r.id for r in await recycle_bin.batch_members("B1")] == [second]
        await recycle_bin.restore(second)
        assert (await store.get("payments", "P2")).data == {"amount": 2}
        assert await store.get("payments", "P1") is None

    @pytest.mark.asyncio
    async def test_purge_missing_is_silent(self, recycle_bin):
        await recycle_bin.permanent_delete("nope")

    @pytest.mark.asyncio
    async def test_empty_bin(self, store, recycle_bin):
        for i in range(3):
            await store.set("payments", f"P{i}", {"amount": i})
            await recycle_bin.soft_delete("payments", f"P{i}", "payment", f"P{i}")

        assert await recycle_bin.empty_bin() == 3
        assert await recycle_bin.list_items() == []
        assert await recycle_bin.empty_bin() == 0


class TestRetentionSweep:
    """Test cleanup_old_items."""

    @pytest.mark.asyncio
    async def test_boundary(self, store, recycle_bin, clock):
        await store.set("payments", "OLD", {"amount": 1})
        await store.set("payments", "NEW", {"amount": 2})
        old_held = await recycle_bin.soft_delete("payments", "OLD", "payment", "OLD")
        clock.advance(days=1)
        new_held = await recycle_bin.soft_delete("payments", "NEW", "payment", "NEW")

        # OLD is now exactly seven days old, NEW six
        clock.advance(days=6)
        removed = await recycle_bin.cleanup_old_items()

        assert removed == 1
        assert await store.get("recycle_bin", old_held) is None
        assert await store.get("recycle_bin", new_held) is not None

    @pytest.mark.asyncio
    async def test_six_days_kept(self, store, recycle_bin, clock):
        await store.set("payments", "P1", {"amount": 1})
        await recycle_bin.soft_delete("payments", "P1", "payment", "P1")

        clock.advance(days=6, hours=23, minutes=59)

        assert await recycle_bin.cleanup_old_items() == 0

    @pytest.mark.asyncio
    async def test_idempotent(self, store, recycle_bin, clock):
        await store.set("payments", "P1", {"amount": 1})
        await recycle_bin.soft_delete("payments", "P1", "payment", "P1")
        clock.advance(days=10)

        assert await recycle_bin.cleanup_old_items() == 1
        assert await recycle_bin.cleanup_old_items() == 0

    @pytest.mark.asyncio
    async def test_sweep_ignores_batches(self, store, recycle_bin, clock):
        await store.set("payments", "P1", {"amount": 1})
        await store.set("payments", "P2", {"amount": 2})
        await recycle_bin.soft_delete("payments", "P1", "payment", "P1", batch_id="B1")
        clock.advance(days=3)
        kept = await recycle_bin.soft_delete(
            "payments", "P2", "payment", "P2", batch_id="B1"
        )
        clock.advance(days=4)

        assert await recycle_bin.cleanup_old_items() == 1
        assert [r.id for r in await recycle_bin.batch_members("B1")] == [kept]

    @pytest.mark.asyncio
    async def test_configured_retention(self, store, clock):
        recycle_bin = RecycleBinService(
            store, config=CharityConfig(environment="test", recycle_retention_days=2)
        )
        await store.set("payments", "P1", {"amount": 1})
        await recycle_bin.soft_delete("payments", "P1", "payment", "P1")
        clock.advance(days=2)

        assert await recycle_bin.cleanup_old_items() == 1


class TestWatch:
    """Test the live view of the bin."""

    @pytest.mark.asyncio
    async def test_watch_orders_newest_first(self, store, recycle_bin, clock):
        deliveries = []
        await store.set("payments", "P1", {"amount": 1})
        await store.set("payments", "P2", {"amount": 2})
        first = await recycle_bin.soft_delete("payments", "P1", "payment", "P1")

        subscription = await recycle_bin.watch(
            lambda records: deliveries.append([r.id for r in records])
        )
        clock.advance(minutes=5)
        second = await recycle_bin.soft_delete("payments", "P2", "payment", "P2")
        subscription.unsubscribe()

        assert deliveries[0] == [first]
        assert deliveries[-1] == [second, first]

    @pytest.mark.asyncio
    async def test_watch_sweeps_first(self, store, recycle_bin, clock):
        await store.set("payments", "P1", {"amount": 1})
        await recycle_bin.soft_delete("payments", "P1", "payment", "P1")
        clock.advance(days=8)
        deliveries = []

        await recycle_bin.watch(lambda records: deliveries.append(records))

        assert deliveries == [[]]

    @pytest.mark.asyncio
    async def test_watch_without_sweep(self, store, recycle_bin, clock):
        await store.set("payments", "P1", {"amount": 1})
        await recycle_bin.soft_delete("payments", "P1", "payment", "P1")
        clock.advance(days=8)
        deliveries = []

        await recycle_bin.watch(lambda records: deliveries.append(records), cleanup=False)

        assert len(deliveries[0]) == 1
        assert deliveries[0][0].days_remaining(now=clock.now) == -1

    @pytest.mark.asyncio
    async def test_failed_sweep_still_opens_view(self, store, recycle_bin, monkeypatch):
        async def failing_cleanup():
            raise StoreUnavailable("offline")

        monkeypatch.setattr(recycle_bin, "cleanup_old_items", failing_cleanup)
        deliveries = []

        await recycle_bin.watch(lambda records: deliveries.append(records))

        assert deliveries == [[]]


class TestPolicies:
    """Test the restore policy table."""

    def test_every_kind_has_a_policy(self):
        assert set(POLICY_BY_KIND) == set(RecycleItemKind)

    def test_policy_for(self, store):
        assert isinstance(policy_for(RecycleItemKind.PAYMENT, store), StandardRestore)
        assert isinstance(policy_for("other", store), StandardRestore)
        assert isinstance(policy_for("user", store), UserRestore)

    def test_policy_for_unknown(self, store):
        with pytest.raises(ValueError):
            policy_for("invoice", store)


class TestHeldRecord:
    """Test the held record model."""

    def test_days_remaining(self, clock):
        record = HeldRecord(
            id="H1",
            originalId="P1",
            originalCollection="payments",
            type="payment",
            deletedAt=clock.now,
        )

        assert record.days_remaining(now=clock.now) == 7
        clock.advance(days=2, hours=12)
        assert record.days_remaining(now=clock.now) == 5
        clock.advance(days=6)
        assert record.days_remaining(now=clock.now) == -1

    def test_summary(self, clock):
        record = HeldRecord(
            id="H1",
            original_id="P1",
            original_collection="payments",
            kind=RecycleItemKind.PAYMENT,
            display_name="Jan Dues — Rahim",
            deleted_at=clock.now,
            batch_id="B1",
        )

        summary = record.summary()
        assert summary["type"] == "payment"
        assert summary["name"] == "Jan Dues — Rahim"
        assert summary["deleted_at"] == clock.now.isoformat()
        assert summary["batch_id"] == "B1"
