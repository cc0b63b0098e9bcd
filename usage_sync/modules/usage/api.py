from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query

from usage_sync.core.exceptions import BadRequestError
from usage_sync.core.utils.time import from_epoch_ms
from usage_sync.dependencies import UsageContext, get_usage_context
from usage_sync.modules.usage.schemas import (
    UsageAggregateResponse,
    UsagePeriodResponse,
    UsageUpdateResponse,
    UserOverageResponse,
)

router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.get("", response_model=List[UsagePeriodResponse])
async def get_cached_usage_history(
    from_time: int | None = Query(default=None, alias="fromTime", description="Epoch milliseconds"),
    to_time: int | None = Query(default=None, alias="toTime", description="Epoch milliseconds"),
    context: UsageContext = Depends(get_usage_context),
) -> List[UsagePeriodResponse]:
    return await context.service.get_cached_history(_epoch_ms_param(from_time), _epoch_ms_param(to_time))


@router.get("/user", response_model=UsageAggregateResponse)
async def get_user_usage(
    user_id: str | None = Query(default=None, alias="userId"),
    from_time: int | None = Query(default=None, alias="fromTime"),
    to_time: int | None = Query(default=None, alias="toTime"),
    context: UsageContext = Depends(get_usage_context),
) -> UsageAggregateResponse:
    return await context.service.get_user_usage(user_id, _epoch_ms_param(from_time), _epoch_ms_param(to_time))


@router.get("/user/overage", response_model=UserOverageResponse)
async def get_user_overage(
    user_id: str | None = Query(default=None, alias="userId"),
    from_time: int | None = Query(default=None, alias="fromTime"),
    to_time: int | None = Query(default=None, alias="toTime"),
    context: UsageContext = Depends(get_usage_context),
) -> UserOverageResponse:
    return await context.service.get_user_overage(user_id, _epoch_ms_param(from_time), _epoch_ms_param(to_time))


@router.post("/update", response_model=UsageUpdateResponse)
async def update_usage(
    from_time: int | None = Query(default=None, alias="fromTime"),
    to_time: int | None = Query(default=None, alias="toTime"),
    new_usage_report: bool = Query(default=False, alias="newUsageReport"),
    context: UsageContext = Depends(get_usage_context),
) -> UsageUpdateResponse:
    return await context.service.update_usage(
        _epoch_ms_param(from_time),
        _epoch_ms_param(to_time),
        report_usage=new_usage_report,
    )


def _epoch_ms_param(value: int | None) -> datetime | None:
    try:
        return from_epoch_ms(value)
    except ValueError as exc:
        raise BadRequestError(str(exc)) from exc
