from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from usage_sync import __version__
from usage_sync.core.clients.http import close_http_client, init_http_client
from usage_sync.core.handlers import add_exception_handlers
from usage_sync.core.middleware import add_request_id_middleware
from usage_sync.db.session import close_db, init_db
from usage_sync.modules.usage import api as usage_api
from usage_sync.modules.usage.sync_scheduler import build_usage_sync_scheduler


@asynccontextmanager
async def lifespan(_: FastAPI):
    await init_db()
    await init_http_client()
    sync_scheduler = build_usage_sync_scheduler()
    await sync_scheduler.start()

    try:
        yield
    finally:
        await sync_scheduler.stop()
        try:
            await close_http_client()
        finally:
            await close_db()


def create_app() -> FastAPI:
    app = FastAPI(
        title="usage-sync",
        version=__version__,
        lifespan=lifespan,
    )

    add_request_id_middleware(app)
    add_exception_handlers(app)

    app.include_router(usage_api.router)

    return app


app = create_app()
