from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from usage_sync.core.clients.billing import BillingReportError
from usage_sync.core.clients.metering import MeteringFetchError
from usage_sync.core.errors import api_error
from usage_sync.core.exceptions import AppError

logger = logging.getLogger(__name__)


def add_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _domain_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=api_error(exc.code, exc.message),
        )

    @app.exception_handler(MeteringFetchError)
    async def _metering_handler(request: Request, exc: MeteringFetchError) -> JSONResponse:
        logger.warning(
            "Metering upstream failure on %s %s status=%s",
            request.method,
            request.url.path,
            exc.status_code,
        )
        return JSONResponse(
            status_code=502,
            content=api_error("upstream_unavailable", exc.message),
        )

    @app.exception_handler(BillingReportError)
    async def _billing_handler(request: Request, exc: BillingReportError) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content=api_error("upstream_unavailable", exc.message),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=api_error("validation_error", "Invalid request payload"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content=api_error(f"http_{exc.status_code}", detail),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=api_error("internal_error", "Unexpected error"),
        )
