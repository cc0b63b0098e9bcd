from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from usage_sync.core import usage as usage_core
from usage_sync.core.clients.metering import fetch_usage_history
from usage_sync.core.config.settings import get_settings
from usage_sync.core.usage.types import TimeWindow, UsagePeriodRecord
from usage_sync.core.utils.request_id import get_request_id
from usage_sync.core.utils.time import to_utc_naive, utcnow
from usage_sync.db.models import UsagePeriod

logger = logging.getLogger(__name__)


class UsageRepositoryPort(Protocol):
    async def upsert(self, record: UsagePeriodRecord) -> None: ...

    async def latest(self, *, use_replica: bool = False) -> UsagePeriod | None: ...


class UsageSyncer:
    """Incrementally mirrors per-period metering history into the usage cache.

    Without explicit bounds the window starts at the watermark (date of the
    newest cached period) and ends now. Every fetched period is upserted by its
    day id, so re-running a window leaves the cache unchanged and a failure
    midway keeps the periods already written.
    """

    def __init__(self, usage_repo: UsageRepositoryPort) -> None:
        self._usage_repo = usage_repo

    async def sync(self, window: TimeWindow | None = None) -> list[UsagePeriodRecord]:
        if window is None:
            window = await self.resolve_window()
        if window.is_empty:
            return []

        payloads = await fetch_usage_history(window=window)
        records = _dedupe_by_period(usage_core.to_period_record(payload) for payload in payloads)
        for record in records:
            await self._usage_repo.upsert(record)

        logger.info(
            "Usage sync finished request_id=%s from=%s to=%s periods=%s",
            get_request_id(),
            window.start.isoformat(),
            window.end.isoformat(),
            len(records),
        )
        return records

    async def resolve_window(self, start: datetime | None = None, end: datetime | None = None) -> TimeWindow:
        bounded = start is not None and end is not None
        if start is None:
            latest = await self._usage_repo.latest(use_replica=True)
            start = latest.date if latest is not None else get_settings().usage_epoch_start
        start = to_utc_naive(start)
        end = to_utc_naive(end) if end is not None else utcnow()
        if not bounded:
            # a watermark past the end, or a start past the clock, yields an empty window
            end = max(end, start)
        return TimeWindow(start=start, end=end)


def _dedupe_by_period(records: Iterable[UsagePeriodRecord]) -> list[UsagePeriodRecord]:
    by_id: dict[str, UsagePeriodRecord] = {}
    for record in records:
        by_id[record.id] = record
    return sorted(by_id.values(), key=lambda record: (record.date, record.id))
