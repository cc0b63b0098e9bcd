from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class LimitKind(str, Enum):
    TRANSCODING = "transcoding"
    DELIVERY = "delivery"
    STORAGE = "storage"


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Closed ``[start, end]`` range in naive UTC."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"window start {self.start.isoformat()} is after end {self.end.isoformat()}")

    @property
    def is_empty(self) -> bool:
        return self.start == self.end


@dataclass(frozen=True, slots=True)
class PlanLimits:
    transcoding_limit: float | None = None
    delivery_limit: float | None = None
    storage_limit: float | None = None


@dataclass(frozen=True, slots=True)
class OverageReport:
    total_usage_overage: float
    delivery_usage_overage: float
    storage_usage_overage: float


@dataclass(frozen=True, slots=True)
class UsagePercentageReport:
    total_usage_percent: float
    delivery_usage_percent: float
    storage_usage_percent: float


@dataclass(frozen=True, slots=True)
class UsagePeriodRecord:
    id: str
    date: datetime
    total_usage_minutes: float
    delivery_usage_minutes: float
    storage_usage_minutes: float
