from __future__ import annotations

import asyncio
import logging

import aiohttp
from aiohttp_retry import ExponentialRetry, RetryClient

from usage_sync.core.clients.http import get_http_client
from usage_sync.core.types import JsonObject
from usage_sync.core.usage.types import TimeWindow
from usage_sync.core.utils.request_id import get_request_id
from usage_sync.core.utils.time import to_epoch_ms

logger = logging.getLogger(__name__)


class BillingReportError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class BillingReportClient:
    """Reports usage for a window to the subscription provider.

    The provider call is not idempotent, so it is never retried here.
    """

    def __init__(
        self,
        url: str,
        *,
        access_token: str | None = None,
        timeout_seconds: float = 30.0,
        client: RetryClient | None = None,
    ) -> None:
        self._url = url
        self._access_token = access_token
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._client = client

    async def report_usage(self, window: TimeWindow) -> JsonObject:
        retry_client = self._client or get_http_client().retry_client
        headers = {"Accept": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        request_id = get_request_id()
        if request_id:
            headers["x-request-id"] = request_id
        body = {"from": to_epoch_ms(window.start), "to": to_epoch_ms(window.end)}

        try:
            async with retry_client.request(
                "POST",
                self._url,
                json=body,
                headers=headers,
                timeout=self._timeout,
                retry_options=ExponentialRetry(attempts=1),
            ) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None
                if resp.status >= 400:
                    logger.warning(
                        "Billing usage report failed request_id=%s status=%s",
                        get_request_id(),
                        resp.status,
                    )
                    raise BillingReportError(resp.status, f"Usage report failed ({resp.status})")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Billing usage report error request_id=%s error=%s", get_request_id(), exc)
            raise BillingReportError(0, f"Usage report failed: {exc}") from exc

        logger.info(
            "Billing usage reported request_id=%s from=%s to=%s",
            get_request_id(),
            window.start.isoformat(),
            window.end.isoformat(),
        )
        return data if isinstance(data, dict) else {"result": data}
