from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from usage_sync.core.usage.models import PlanUsageItem, ProductPlan, UsageAggregate, UsagePeriodPayload
from usage_sync.core.usage.types import (
    LimitKind,
    OverageReport,
    PlanLimits,
    UsagePercentageReport,
    UsagePeriodRecord,
)

# Policy for a metric the plan declares no limit for: the whole usage counts as overage.
MISSING_LIMIT_DEFAULT = 0.0

_LIMIT_NAMES: dict[str, LimitKind] = {kind.value: kind for kind in LimitKind}


def resolve_limits(plan: ProductPlan | None) -> PlanLimits:
    if plan is None:
        return PlanLimits()
    return _limits_from_items(plan.usage)


def _limits_from_items(items: Iterable[PlanUsageItem]) -> PlanLimits:
    resolved: dict[LimitKind, float | None] = {}
    for item in items:
        kind = _LIMIT_NAMES.get(item.name.strip().lower())
        if kind is None:
            continue
        # later line items overwrite earlier ones
        resolved[kind] = item.limit
    return PlanLimits(
        transcoding_limit=resolved.get(LimitKind.TRANSCODING),
        delivery_limit=resolved.get(LimitKind.DELIVERY),
        storage_limit=resolved.get(LimitKind.STORAGE),
    )


def compute_overage(usage: UsageAggregate | None, limits: PlanLimits) -> OverageReport:
    total, delivery, storage = _usage_values(usage)
    return OverageReport(
        total_usage_overage=_overage(total, limits.transcoding_limit),
        delivery_usage_overage=_overage(delivery, limits.delivery_limit),
        storage_usage_overage=_overage(storage, limits.storage_limit),
    )


def compute_percentage(usage: UsageAggregate | None, limits: PlanLimits) -> UsagePercentageReport:
    total, delivery, storage = _usage_values(usage)
    return UsagePercentageReport(
        total_usage_percent=_percent_of_limit(total, limits.transcoding_limit),
        delivery_usage_percent=_percent_of_limit(delivery, limits.delivery_limit),
        storage_usage_percent=_percent_of_limit(storage, limits.storage_limit),
    )


def period_id(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


def to_period_record(payload: UsagePeriodPayload) -> UsagePeriodRecord:
    total, delivery, storage = _usage_values(payload)
    return UsagePeriodRecord(
        id=period_id(payload.date),
        date=payload.date,
        total_usage_minutes=total,
        delivery_usage_minutes=delivery,
        storage_usage_minutes=storage,
    )


def _usage_values(usage: UsageAggregate | None) -> tuple[float, float, float]:
    if usage is None:
        return 0.0, 0.0, 0.0
    return (
        _float_or_zero(usage.total_usage_mins),
        _float_or_zero(usage.delivery_usage_mins),
        _float_or_zero(usage.storage_usage_mins),
    )


def _overage(used: float, limit: float | None) -> float:
    allowance = limit if limit is not None else MISSING_LIMIT_DEFAULT
    return max(used - allowance, 0.0)


def _percent_of_limit(used: float, limit: float | None) -> float:
    if not limit:
        return 0.0
    return max(used * 100 / limit, 0.0)


def _float_or_zero(value: float | None) -> float:
    if value is None:
        return 0.0
    return float(value)
