from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from usage_sync.core.clients.billing import BillingReportClient
from usage_sync.core.config.settings import get_settings
from usage_sync.db.session import get_replica_session, get_session
from usage_sync.modules.usage.repository import UsageRepository
from usage_sync.modules.usage.service import UsageReporter, UsageService
from usage_sync.modules.users.repository import UsersRepository


@dataclass(slots=True)
class UsageContext:
    session: AsyncSession
    service: UsageService


def get_usage_reporter() -> UsageReporter | None:
    settings = get_settings()
    if not settings.billing_report_url:
        return None
    return BillingReportClient(
        settings.billing_report_url,
        access_token=settings.billing_report_token,
        timeout_seconds=settings.billing_report_timeout_seconds,
    )


def get_usage_context(
    session: AsyncSession = Depends(get_session),
    replica_session: AsyncSession = Depends(get_replica_session),
    reporter: UsageReporter | None = Depends(get_usage_reporter),
) -> UsageContext:
    usage_repo = UsageRepository(session, replica_session)
    users_repo = UsersRepository(session)
    return UsageContext(session=session, service=UsageService(usage_repo, users_repo, reporter))
