from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from usage_sync.core.utils.time import from_epoch_ms


class UsageAggregate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    total_usage_mins: float | None = Field(default=None, alias="TotalUsageMins")
    delivery_usage_mins: float | None = Field(default=None, alias="DeliveryUsageMins")
    storage_usage_mins: float | None = Field(default=None, alias="StorageUsageMins")


class UsagePeriodPayload(UsageAggregate):
    date: datetime

    @field_validator("date", mode="before")
    @classmethod
    def _parse_epoch_ms(cls, value: object) -> object:
        # metering timestamps are epoch milliseconds
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return from_epoch_ms(value)
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return from_epoch_ms(int(value.strip()))
        return value

    @field_validator("date")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)


class PlanUsageItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    limit: float | None = None


class ProductPlan(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    usage: list[PlanUsageItem] = Field(default_factory=list)
