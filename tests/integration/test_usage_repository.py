from __future__ import annotations

from datetime import datetime

import pytest

from usage_sync.core.usage.types import TimeWindow, UsagePeriodRecord
from usage_sync.db.models import UsagePeriod
from usage_sync.db.session import ReplicaSessionLocal, SessionLocal
from usage_sync.modules.usage.repository import UsageRepository

pytestmark = pytest.mark.integration


def _record(day: int, total: float = 1.0) -> UsagePeriodRecord:
    return UsagePeriodRecord(
        id=f"2024-01-{day:02d}",
        date=datetime(2024, 1, day),
        total_usage_minutes=total,
        delivery_usage_minutes=total * 2,
        storage_usage_minutes=total * 3,
    )


def _snapshot(row: UsagePeriod | None) -> tuple:
    assert row is not None
    return (
        row.id,
        row.date,
        row.total_usage_minutes,
        row.delivery_usage_minutes,
        row.storage_usage_minutes,
        row.synced_at,
    )

@pytest.mark.asyncio
async def test_create_get_and_replace(db_setup):
    async with SessionLocal() as session:
        repo = UsageRepository(session)

        assert await repo.get("2024-01-01") is None
        await repo.create(_record(1, 5.0))
        stored = await repo.get("2024-01-01")
        assert stored is not None
        assert stored.total_usage_minutes == 5.0

        replaced = await repo.replace(_record(1, 8.0))
        assert replaced is not None
        assert replaced.storage_usage_minutes == 24.0
        assert await repo.replace(_record(2)) is None


@pytest.mark.asyncio
async def test_upsert_creates_then_replaces_wholesale(db_setup):
    async with SessionLocal() as session:
        repo = UsageRepository(session)

        await repo.upsert(_record(3, 4.0))
        await repo.upsert(_record(3, 9.0))

        rows = await repo.find()
        assert [row.id for row in rows] == ["2024-01-03"]
        assert rows[0].total_usage_minutes == 9.0
        assert rows[0].delivery_usage_minutes == 18.0


@pytest.mark.asyncio
async def test_upsert_twice_with_same_data_is_idempotent(db_setup):
    async with SessionLocal() as session:
        repo = UsageRepository(session)
        for _ in range(2):
            for day in (1, 2):
                await repo.upsert(_record(day, float(day)))

        rows = await repo.find()
        assert [(row.id, row.total_usage_minutes) for row in rows] == [("2024-01-01", 1.0), ("2024-01-02", 2.0)]


@pytest.mark.asyncio
async def test_repeated_upsert_leaves_rows_identical(db_setup):
    async with SessionLocal() as session:
        repo = UsageRepository(session)

        await repo.upsert(_record(4, 2.0))
        first = _snapshot(await repo.get("2024-01-04"))
        await repo.upsert(_record(4, 2.0))
        second = _snapshot(await repo.get("2024-01-04"))
        await repo.replace(_record(4, 2.0))
        third = _snapshot(await repo.get("2024-01-04"))

        assert first == second == third

        await repo.upsert(_record(4, 3.0))
        changed = await repo.get("2024-01-04")
        assert changed is not None
        assert changed.total_usage_minutes == 3.0
        assert changed.synced_at >= first[-1]


@pytest.mark.asyncio
async def test_find_uses_closed_window_and_orders_by_date(db_setup):
    async with SessionLocal() as session:
        repo = UsageRepository(session)
        for day in (4, 1, 3, 2):
            await repo.upsert(_record(day))

        window = TimeWindow(start=datetime(2024, 1, 2), end=datetime(2024, 1, 3))
        rows = await repo.find(window)
        assert [row.id for row in rows] == ["2024-01-02", "2024-01-03"]

        newest = await repo.find(limit=2, descending=True)
        assert [row.id for row in newest] == ["2024-01-04", "2024-01-03"]

        empty = await repo.find(TimeWindow(start=datetime(2023, 1, 1), end=datetime(2023, 12, 31)))
        assert empty == []


@pytest.mark.asyncio
async def test_latest_reads_through_replica_session(db_setup):
    async with SessionLocal() as session, ReplicaSessionLocal() as replica_session:
        repo = UsageRepository(session, replica_session)
        assert await repo.latest(use_replica=True) is None

        await repo.upsert(_record(1))
        await repo.upsert(_record(5))
        await repo.upsert(_record(2))

        latest = await repo.latest(use_replica=True)
        assert latest is not None
        assert latest.id == "2024-01-05"
