from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="usage-sync-tests-"))
TEST_DB_PATH = TEST_DB_DIR / "usage-sync.db"

os.environ["USAGE_SYNC_DATABASE_URL"] = os.environ.get(
    "USAGE_SYNC_TEST_DATABASE_URL", f"sqlite+aiosqlite:///{TEST_DB_PATH}"
)
os.environ["USAGE_SYNC_METERING_BASE_URL"] = "https://metering.example.invalid/api/data"
os.environ["USAGE_SYNC_METERING_TOKEN"] = "admin-token"
os.environ["USAGE_SYNC_USAGE_SYNC_ENABLED"] = "false"

from usage_sync.db.models import Base  # noqa: E402
from usage_sync.db.session import engine  # noqa: E402
from usage_sync.main import create_app  # noqa: E402


async def _reset_schema() -> None:
    async with engine.begin() as conn:

        def _reset(sync_conn):
            Base.metadata.drop_all(sync_conn)
            Base.metadata.create_all(sync_conn)

        await conn.run_sync(_reset)


@pytest_asyncio.fixture
async def app_instance():
    app = create_app()
    await _reset_schema()
    return app


@pytest_asyncio.fixture
async def db_setup():
    await _reset_schema()
    return True


@pytest_asyncio.fixture
async def async_client(app_instance):
    async with app_instance.router.lifespan_context(app_instance):
        transport = ASGITransport(app=app_instance)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    from usage_sync.core.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
