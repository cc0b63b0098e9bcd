from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from usage_sync.core import usage as usage_core
from usage_sync.core.clients.metering import fetch_usage
from usage_sync.core.config.settings import get_settings
from usage_sync.core.exceptions import BadRequestError, NotFoundError
from usage_sync.core.types import JsonObject
from usage_sync.core.usage.models import ProductPlan
from usage_sync.core.usage.types import TimeWindow
from usage_sync.core.utils.request_id import get_request_id
from usage_sync.core.utils.time import to_utc_naive, utcnow
from usage_sync.db.models import BillingUser
from usage_sync.modules.usage.mappers import (
    to_aggregate_response,
    to_overage_response,
    to_percentages_response,
    to_period_response,
)
from usage_sync.modules.usage.repository import UsageRepository
from usage_sync.modules.usage.schemas import (
    UsageAggregateResponse,
    UsagePeriodResponse,
    UsageUpdateResponse,
    UserOverageResponse,
)
from usage_sync.modules.usage.syncer import UsageSyncer
from usage_sync.modules.users.repository import UsersRepository

logger = logging.getLogger(__name__)


class UsageReporter(Protocol):
    async def report_usage(self, window: TimeWindow) -> JsonObject: ...


class UsageService:
    def __init__(
        self,
        usage_repo: UsageRepository,
        users_repo: UsersRepository,
        reporter: UsageReporter | None = None,
    ) -> None:
        self._usage_repo = usage_repo
        self._users_repo = users_repo
        self._syncer = UsageSyncer(usage_repo)
        self._reporter = reporter

    async def get_cached_history(self, start: datetime | None, end: datetime | None) -> list[UsagePeriodResponse]:
        window = query_window(start, end)
        periods = await self._usage_repo.find(window, use_replica=True)
        return [to_period_response(period) for period in periods]

    async def get_user_usage(
        self,
        user_id: str | None,
        start: datetime | None,
        end: datetime | None,
    ) -> UsageAggregateResponse:
        user_id = _require_user_id(user_id)
        usage = await fetch_usage(user_id=user_id, window=query_window(start, end))
        return to_aggregate_response(usage)

    async def get_user_overage(
        self,
        user_id: str | None,
        start: datetime | None,
        end: datetime | None,
    ) -> UserOverageResponse:
        user_id = _require_user_id(user_id)
        window = query_window(start, end)
        user = await self._users_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"user not found: {user_id}")
        plan = _plan_for_user(user)

        usage = await fetch_usage(user_id=user_id, window=window)
        limits = usage_core.resolve_limits(plan)
        return UserOverageResponse(
            user_id=user.id,
            plan_id=user.plan_id,
            usage=to_aggregate_response(usage),
            overage=to_overage_response(usage_core.compute_overage(usage, limits)),
            usage_percentages=to_percentages_response(usage_core.compute_percentage(usage, limits)),
        )

    async def update_usage(
        self,
        start: datetime | None,
        end: datetime | None,
        *,
        report_usage: bool = False,
    ) -> UsageUpdateResponse:
        try:
            window = await self._syncer.resolve_window(start, end)
        except ValueError as exc:
            raise BadRequestError(str(exc)) from exc

        report: JsonObject | None = None
        if report_usage:
            if self._reporter is None:
                raise BadRequestError("Usage reporting is not configured")
            report = await self._reporter.report_usage(window)
            logger.info("Usage report submitted request_id=%s", get_request_id())

        records = await self._syncer.sync(window)
        return UsageUpdateResponse(
            report=report,
            periods=[to_period_response(record) for record in records],
        )


def query_window(start: datetime | None, end: datetime | None) -> TimeWindow:
    start = to_utc_naive(start) if start is not None else get_settings().usage_epoch_start
    end = to_utc_naive(end) if end is not None else utcnow()
    try:
        return TimeWindow(start=start, end=end)
    except ValueError as exc:
        raise BadRequestError(str(exc)) from exc


def _require_user_id(user_id: str | None) -> str:
    if not user_id or not user_id.strip():
        raise BadRequestError("userId is required")
    return user_id.strip()


def _plan_for_user(user: BillingUser) -> ProductPlan | None:
    if user.plan_id is None:
        return None
    plan = get_settings().product_plans.get(user.plan_id)
    if plan is None:
        raise NotFoundError(f"plan not found: {user.plan_id}")
    return plan
