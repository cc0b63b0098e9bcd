from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import pytest

from usage_sync.core.clients.metering import MeteringFetchError
from usage_sync.core.usage.models import UsagePeriodPayload
from usage_sync.core.usage.types import TimeWindow, UsagePeriodRecord
from usage_sync.modules.usage.syncer import UsageSyncer

pytestmark = pytest.mark.unit


@dataclass(slots=True)
class CachedPeriod:
    id: str
    date: datetime


class StubUsageRepository:
    def __init__(self, *, fail_on: str | None = None) -> None:
        self.rows: dict[str, UsagePeriodRecord] = {}
        self.writes: list[str] = []
        self.latest_calls: list[bool] = []
        self._fail_on = fail_on

    async def upsert(self, record: UsagePeriodRecord) -> None:
        if record.id == self._fail_on:
            raise RuntimeError("store unavailable")
        self.writes.append(record.id)
        self.rows[record.id] = record

    async def latest(self, *, use_replica: bool = False) -> CachedPeriod | None:
        self.latest_calls.append(use_replica)
        if not self.rows:
            return None
        newest = max(self.rows.values(), key=lambda record: record.date)
        return CachedPeriod(id=newest.id, date=newest.date)


def _payload(day: int, total: float, *, hour: int = 0) -> UsagePeriodPayload:
    return UsagePeriodPayload.model_validate(
        {
            "date": datetime(2024, 1, day, hour).isoformat(),
            "TotalUsageMins": total,
            "DeliveryUsageMins": total * 2,
            "StorageUsageMins": total / 2,
        }
    )


class StubHistory:
    def __init__(self, periods: list[UsagePeriodPayload]) -> None:
        self.periods = periods
        self.windows: list[TimeWindow] = []

    async def __call__(self, *, window: TimeWindow, **_: Any) -> list[UsagePeriodPayload]:
        self.windows.append(window)
        return [period for period in self.periods if window.start <= period.date <= window.end]


@pytest.fixture
def history(monkeypatch) -> StubHistory:
    stub = StubHistory([_payload(3, 30), _payload(1, 10), _payload(2, 20)])
    monkeypatch.setattr("usage_sync.modules.usage.syncer.fetch_usage_history", stub)
    return stub


@pytest.mark.asyncio
async def test_sync_returns_periods_in_date_order(history: StubHistory):
    repo = StubUsageRepository()
    window = TimeWindow(start=datetime(2024, 1, 1), end=datetime(2024, 1, 5))

    records = await UsageSyncer(repo).sync(window)

    assert [record.id for record in records] == ["2024-01-01", "2024-01-02", "2024-01-03"]
    assert records[1].total_usage_minutes == 20
    assert records[1].delivery_usage_minutes == 40
    assert records[1].storage_usage_minutes == 10
    assert repo.writes == ["2024-01-01", "2024-01-02", "2024-01-03"]


@pytest.mark.asyncio
async def test_resync_of_same_window_leaves_cache_unchanged(history: StubHistory):
    repo = StubUsageRepository()
    syncer = UsageSyncer(repo)
    window = TimeWindow(start=datetime(2024, 1, 1), end=datetime(2024, 1, 5))

    first = await syncer.sync(window)
    snapshot = dict(repo.rows)
    second = await syncer.sync(window)

    assert first == second
    assert repo.rows == snapshot


@pytest.mark.asyncio
async def test_latest_fetch_replaces_cached_period(history: StubHistory):
    repo = StubUsageRepository()
    syncer = UsageSyncer(repo)
    window = TimeWindow(start=datetime(2024, 1, 1), end=datetime(2024, 1, 5))
    await syncer.sync(window)

    history.periods = [_payload(2, 99)]
    await syncer.sync(window)

    assert repo.rows["2024-01-02"].total_usage_minutes == 99
    assert repo.rows["2024-01-01"].total_usage_minutes == 10


@pytest.mark.asyncio
async def test_sync_without_window_resumes_from_watermark(history: StubHistory):
    repo = StubUsageRepository()
    watermark = datetime(2024, 1, 2)
    repo.rows["2024-01-02"] = UsagePeriodRecord("2024-01-02", watermark, 1.0, 1.0, 1.0)

    records = await UsageSyncer(repo).sync()

    assert repo.latest_calls == [True]
    assert history.windows[0].start == watermark
    assert all(record.date >= watermark for record in records)
    assert "2024-01-01" not in repo.writes


@pytest.mark.asyncio
async def test_sync_without_cache_starts_at_epoch(history: StubHistory):
    repo = StubUsageRepository()

    await UsageSyncer(repo).sync()

    assert history.windows[0].start == datetime(2020, 1, 1)
    assert history.windows[0].end >= datetime(2024, 1, 3)


@pytest.mark.asyncio
async def test_empty_window_skips_fetch_and_writes(history: StubHistory):
    repo = StubUsageRepository()
    moment = datetime(2024, 1, 2)

    records = await UsageSyncer(repo).sync(TimeWindow(start=moment, end=moment))

    assert records == []
    assert history.windows == []
    assert repo.writes == []


@pytest.mark.asyncio
async def test_duplicate_periods_in_one_fetch_keep_the_last(history: StubHistory):
    history.periods = [_payload(1, 5, hour=1), _payload(1, 6, hour=2)]
    repo = StubUsageRepository()

    records = await UsageSyncer(repo).sync(TimeWindow(start=datetime(2024, 1, 1), end=datetime(2024, 1, 2)))

    assert len(records) == 1
    assert records[0].total_usage_minutes == 6


@pytest.mark.asyncio
async def test_failed_upsert_keeps_earlier_periods(history: StubHistory):
    repo = StubUsageRepository(fail_on="2024-01-02")

    with pytest.raises(RuntimeError):
        await UsageSyncer(repo).sync(TimeWindow(start=datetime(2024, 1, 1), end=datetime(2024, 1, 5)))

    assert repo.writes == ["2024-01-01"]


@pytest.mark.asyncio
async def test_fetch_error_propagates_without_writes(monkeypatch):
    async def failing_history(**_: Any) -> list[UsagePeriodPayload]:
        raise MeteringFetchError(503, "metering unavailable")

    monkeypatch.setattr("usage_sync.modules.usage.syncer.fetch_usage_history", failing_history)
    repo = StubUsageRepository()

    with pytest.raises(MeteringFetchError):
        await UsageSyncer(repo).sync(TimeWindow(start=datetime(2024, 1, 1), end=datetime(2024, 1, 5)))

    assert repo.writes == []


@pytest.mark.asyncio
async def test_watermark_ahead_of_clock_resolves_to_empty_window(history: StubHistory):
    repo = StubUsageRepository()
    future = datetime.now() + timedelta(days=365)
    repo.rows["future"] = UsagePeriodRecord("future", future, 0.0, 0.0, 0.0)

    window = await UsageSyncer(repo).resolve_window()

    assert window.is_empty
    assert window.start == future


@pytest.mark.asyncio
async def test_watermark_past_explicit_end_resolves_to_empty_window(history: StubHistory):
    repo = StubUsageRepository()
    repo.rows["2024-01-03"] = UsagePeriodRecord("2024-01-03", datetime(2024, 1, 3), 30.0, 60.0, 15.0)

    window = await UsageSyncer(repo).resolve_window(end=datetime(2024, 1, 2))

    assert window.is_empty
    assert window.start == datetime(2024, 1, 3)
    assert await UsageSyncer(repo).sync(window) == []
    assert history.windows == []


@pytest.mark.asyncio
async def test_explicit_start_after_explicit_end_is_rejected(history: StubHistory):
    with pytest.raises(ValueError):
        await UsageSyncer(StubUsageRepository()).resolve_window(datetime(2024, 1, 3), datetime(2024, 1, 2))
