from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from usage_sync.core.config.settings import get_settings
from usage_sync.core.usage.types import UsagePeriodRecord
from usage_sync.db.session import ReplicaSessionLocal, SessionLocal
from usage_sync.modules.usage.repository import UsageRepository
from usage_sync.modules.usage.syncer import UsageSyncer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UsageSyncScheduler:
    """Runs an incremental usage sync every ``interval_seconds`` until stopped."""

    interval_seconds: int
    enabled: bool
    sync: Callable[[], Awaitable[list[UsagePeriodRecord]]] | None = None
    last_synced_periods: int | None = None
    _task: asyncio.Task[None] | None = None
    _stop: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if not self.enabled or self.running:
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._sync_until_stopped(), name="usage-sync")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        self._stop.set()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _sync_until_stopped(self) -> None:
        while not self._stop.is_set():
            await self._sync_tick()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)

    async def _sync_tick(self) -> None:
        run = self.sync or sync_once
        try:
            records = await run()
        except Exception:
            # the next tick resumes from the watermark
            logger.warning("Scheduled usage sync failed", exc_info=True)
            return
        self.last_synced_periods = len(records)
        logger.debug("Scheduled usage sync wrote periods=%s", len(records))


async def sync_once() -> list[UsagePeriodRecord]:
    async with SessionLocal() as session, ReplicaSessionLocal() as replica_session:
        syncer = UsageSyncer(UsageRepository(session, replica_session))
        return await syncer.sync()


def build_usage_sync_scheduler() -> UsageSyncScheduler:
    settings = get_settings()
    return UsageSyncScheduler(
        interval_seconds=settings.usage_sync_interval_seconds,
        enabled=settings.usage_sync_enabled,
    )
