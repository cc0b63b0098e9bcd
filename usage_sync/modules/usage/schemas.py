from __future__ import annotations

from datetime import datetime
from typing import Any, List

from pydantic import Field

from usage_sync.modules.shared.schemas import CamelModel


class UsagePeriodResponse(CamelModel):
    id: str
    date: datetime
    total_usage_minutes: float
    delivery_usage_minutes: float
    storage_usage_minutes: float


class UsageAggregateResponse(CamelModel):
    total_usage_minutes: float | None = None
    delivery_usage_minutes: float | None = None
    storage_usage_minutes: float | None = None


class UsageOverage(CamelModel):
    total_usage_overage: float
    delivery_usage_overage: float
    storage_usage_overage: float


class UsagePercentages(CamelModel):
    total_usage_percent: float
    delivery_usage_percent: float
    storage_usage_percent: float


class UserOverageResponse(CamelModel):
    user_id: str
    plan_id: str | None = None
    usage: UsageAggregateResponse
    overage: UsageOverage
    usage_percentages: UsagePercentages


class UsageUpdateResponse(CamelModel):
    report: dict[str, Any] | None = None
    periods: List[UsagePeriodResponse] = Field(default_factory=list)
