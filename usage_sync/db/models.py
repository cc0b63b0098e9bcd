from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class UsagePeriod(Base):
    __tablename__ = "usage"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    date: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
    total_usage_minutes: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    delivery_usage_minutes: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    storage_usage_minutes: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    synced_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)


class BillingUser(Base):
    __tablename__ = "billing_users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, nullable=False)
    plan_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
