from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from usage_sync.core.usage.types import TimeWindow, UsagePeriodRecord
from usage_sync.core.utils.time import utcnow
from usage_sync.db.models import UsagePeriod

_USAGE_COLUMNS = ("date", "total_usage_minutes", "delivery_usage_minutes", "storage_usage_minutes")


class UsageRepository:
    def __init__(self, session: AsyncSession, replica_session: AsyncSession | None = None) -> None:
        self._session = session
        self._replica_session = replica_session

    async def get(self, period_id: str) -> UsagePeriod | None:
        # rows written by upsert bypass the identity map
        return await self._session.get(UsagePeriod, period_id, populate_existing=True)

    async def create(self, record: UsagePeriodRecord) -> UsagePeriod:
        entry = UsagePeriod(id=record.id, synced_at=utcnow())
        _apply_record(entry, record)
        self._session.add(entry)
        await self._session.commit()
        await self._session.refresh(entry)
        return entry

    async def replace(self, record: UsagePeriodRecord) -> UsagePeriod | None:
        entry = await self._session.get(UsagePeriod, record.id)
        if entry is None:
            return None
        if _apply_record(entry, record):
            entry.synced_at = utcnow()
        await self._session.commit()
        await self._session.refresh(entry)
        return entry

    async def upsert(self, record: UsagePeriodRecord) -> None:
        values = {
            "id": record.id,
            "date": record.date,
            "total_usage_minutes": record.total_usage_minutes,
            "delivery_usage_minutes": record.delivery_usage_minutes,
            "storage_usage_minutes": record.storage_usage_minutes,
            "synced_at": utcnow(),
        }
        updates = {key: value for key, value in values.items() if key != "id"}
        dialect_name = self._dialect_name()
        if dialect_name == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as sqlite_insert

            stmt = sqlite_insert(UsagePeriod).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[UsagePeriod.id],
                set_=updates,
                where=_usage_changed(stmt.excluded),
            )
            await self._session.execute(stmt)
            await self._session.commit()
            return
        if dialect_name == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as postgresql_insert

            stmt = postgresql_insert(UsagePeriod).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[UsagePeriod.id],
                set_=updates,
                where=_usage_changed(stmt.excluded),
            )
            await self._session.execute(stmt)
            await self._session.commit()
            return
        if await self.replace(record) is None:
            await self.create(record)

    async def find(
        self,
        window: TimeWindow | None = None,
        *,
        limit: int | None = None,
        descending: bool = False,
        use_replica: bool = False,
    ) -> list[UsagePeriod]:
        stmt = select(UsagePeriod).execution_options(populate_existing=True)
        if window is not None:
            stmt = stmt.where(UsagePeriod.date >= window.start, UsagePeriod.date <= window.end)
        if descending:
            stmt = stmt.order_by(UsagePeriod.date.desc(), UsagePeriod.id.desc())
        else:
            stmt = stmt.order_by(UsagePeriod.date.asc(), UsagePeriod.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._reader(use_replica).execute(stmt)
        return list(result.scalars().all())

    async def latest(self, *, use_replica: bool = False) -> UsagePeriod | None:
        rows = await self.find(limit=1, descending=True, use_replica=use_replica)
        return rows[0] if rows else None

    def _reader(self, use_replica: bool) -> AsyncSession:
        if use_replica and self._replica_session is not None:
            return self._replica_session
        return self._session

    def _dialect_name(self) -> str:
        bind = self._session.get_bind()
        return bind.dialect.name if bind is not None else "sqlite"


def _usage_changed(excluded) -> ColumnElement[bool]:
    # unchanged periods keep their row untouched, synced_at included
    return or_(
        *(getattr(UsagePeriod, column).is_distinct_from(getattr(excluded, column)) for column in _USAGE_COLUMNS)
    )


def _apply_record(entry: UsagePeriod, record: UsagePeriodRecord) -> bool:
    changed = False
    for column in _USAGE_COLUMNS:
        value = getattr(record, column)
        if getattr(entry, column) != value:
            setattr(entry, column, value)
            changed = True
    return changed
