from __future__ import annotations

from usage_sync.core.usage.models import UsageAggregate
from usage_sync.core.usage.types import OverageReport, UsagePercentageReport, UsagePeriodRecord
from usage_sync.db.models import UsagePeriod
from usage_sync.modules.usage.schemas import (
    UsageAggregateResponse,
    UsageOverage,
    UsagePercentages,
    UsagePeriodResponse,
)


def to_period_response(period: UsagePeriod | UsagePeriodRecord) -> UsagePeriodResponse:
    return UsagePeriodResponse(
        id=period.id,
        date=period.date,
        total_usage_minutes=period.total_usage_minutes,
        delivery_usage_minutes=period.delivery_usage_minutes,
        storage_usage_minutes=period.storage_usage_minutes,
    )


def to_aggregate_response(usage: UsageAggregate) -> UsageAggregateResponse:
    return UsageAggregateResponse(
        total_usage_minutes=usage.total_usage_mins,
        delivery_usage_minutes=usage.delivery_usage_mins,
        storage_usage_minutes=usage.storage_usage_mins,
    )


def to_overage_response(report: OverageReport) -> UsageOverage:
    return UsageOverage(
        total_usage_overage=report.total_usage_overage,
        delivery_usage_overage=report.delivery_usage_overage,
        storage_usage_overage=report.storage_usage_overage,
    )


def to_percentages_response(report: UsagePercentageReport) -> UsagePercentages:
    return UsagePercentages(
        total_usage_percent=report.total_usage_percent,
        delivery_usage_percent=report.delivery_usage_percent,
        storage_usage_percent=report.storage_usage_percent,
    )
