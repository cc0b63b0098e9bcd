from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
from aiohttp_retry import ExponentialRetry, RetryClient
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from usage_sync.core.clients.http import get_http_client
from usage_sync.core.config.settings import get_settings
from usage_sync.core.types import JsonValue
from usage_sync.core.usage.models import UsageAggregate, UsagePeriodPayload
from usage_sync.core.usage.types import TimeWindow
from usage_sync.core.utils.request_id import get_request_id
from usage_sync.core.utils.time import to_epoch_ms

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}
RETRY_START_TIMEOUT = 0.5
RETRY_MAX_TIMEOUT = 2.0

_PERIODS_ADAPTER = TypeAdapter(list[UsagePeriodPayload])
_INVALID_BODY: Any = object()

logger = logging.getLogger(__name__)


class MeteringErrorDetail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str | None = None


class MeteringErrorEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    error: MeteringErrorDetail | str | None = None
    message: str | None = None


class MeteringFetchError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


async def fetch_usage(
    *,
    user_id: str,
    window: TimeWindow,
    base_url: str | None = None,
    access_token: str | None = None,
    timeout_seconds: float | None = None,
    max_retries: int | None = None,
    client: RetryClient | None = None,
) -> UsageAggregate:
    """Fetch one cumulative usage aggregate for ``user_id`` over ``window``."""
    data = await _get_json(
        "/usage/query",
        params={**_window_params(window), "userId": user_id},
        base_url=base_url,
        access_token=access_token,
        timeout_seconds=timeout_seconds,
        max_retries=max_retries,
        client=client,
    )
    if not isinstance(data, dict):
        logger.warning("Metering usage invalid payload request_id=%s user_id=%s", get_request_id(), user_id)
        raise MeteringFetchError(502, "Invalid usage payload")
    try:
        return UsageAggregate.model_validate(data)
    except ValidationError as exc:
        logger.warning("Metering usage invalid payload request_id=%s user_id=%s", get_request_id(), user_id)
        raise MeteringFetchError(502, "Invalid usage payload") from exc


async def fetch_usage_history(
    *,
    window: TimeWindow,
    user_id: str | None = None,
    base_url: str | None = None,
    access_token: str | None = None,
    timeout_seconds: float | None = None,
    max_retries: int | None = None,
    client: RetryClient | None = None,
) -> list[UsagePeriodPayload]:
    """Fetch one aggregate per period covering ``window``, in upstream order."""
    params: dict[str, str | int] = _window_params(window)
    if user_id:
        params["userId"] = user_id
    data = await _get_json(
        "/usage/history",
        params=params,
        base_url=base_url,
        access_token=access_token,
        timeout_seconds=timeout_seconds,
        max_retries=max_retries,
        client=client,
    )
    try:
        return _PERIODS_ADAPTER.validate_python(data)
    except ValidationError as exc:
        logger.warning("Metering history invalid payload request_id=%s", get_request_id())
        raise MeteringFetchError(502, "Invalid usage history payload") from exc


async def _get_json(
    path: str,
    *,
    params: dict[str, Any],
    base_url: str | None,
    access_token: str | None,
    timeout_seconds: float | None,
    max_retries: int | None,
    client: RetryClient | None,
) -> JsonValue:
    settings = get_settings()
    url = _metering_url(base_url or settings.metering_base_url, path)
    timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.metering_fetch_timeout_seconds)
    retries = max_retries if max_retries is not None else settings.metering_fetch_max_retries
    headers = _metering_headers(access_token if access_token is not None else settings.metering_token)
    retry_client = client or get_http_client().retry_client

    try:
        async with retry_client.request(
            "GET",
            url,
            params=params,
            headers=headers,
            timeout=timeout,
            retry_options=_retry_options(retries + 1),
        ) as resp:
            data = await _safe_json(resp)
            if resp.status >= 400:
                message = _extract_error_message(data) or f"Metering fetch failed ({resp.status})"
                logger.warning(
                    "Metering fetch failed request_id=%s path=%s status=%s message=%s",
                    get_request_id(),
                    path,
                    resp.status,
                    message,
                )
                raise MeteringFetchError(resp.status, message)
            if data is _INVALID_BODY:
                logger.warning("Metering fetch returned non-JSON body request_id=%s path=%s", get_request_id(), path)
                raise MeteringFetchError(502, "Invalid metering response body")
            return data
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.warning(
            "Metering fetch error request_id=%s path=%s error=%s",
            get_request_id(),
            path,
            exc,
        )
        raise MeteringFetchError(0, f"Metering fetch failed: {exc}") from exc


def _metering_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def _metering_headers(access_token: str | None) -> dict[str, str]:
    headers = {"Accept": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    request_id = get_request_id()
    if request_id:
        headers["x-request-id"] = request_id
    return headers


def _window_params(window: TimeWindow) -> dict[str, str | int]:
    return {"from": to_epoch_ms(window.start), "to": to_epoch_ms(window.end)}


async def _safe_json(resp: aiohttp.ClientResponse) -> Any:
    try:
        return await resp.json(content_type=None)
    except ValueError:
        if resp.status >= 400:
            text = await resp.text()
            return {"error": {"message": text.strip()}}
        return _INVALID_BODY


def _extract_error_message(payload: JsonValue) -> str | None:
    if not isinstance(payload, dict):
        return None
    envelope = MeteringErrorEnvelope.model_validate(payload)
    error = envelope.error
    if isinstance(error, MeteringErrorDetail):
        return error.message
    if isinstance(error, str):
        return error
    return envelope.message


def _retry_options(attempts: int) -> ExponentialRetry:
    return ExponentialRetry(
        attempts=attempts,
        start_timeout=RETRY_START_TIMEOUT,
        max_timeout=RETRY_MAX_TIMEOUT,
        factor=2.0,
        statuses=RETRYABLE_STATUS,
        exceptions={aiohttp.ClientError, asyncio.TimeoutError},
        retry_all_server_errors=False,
    )
