from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from usage_sync.core.usage.models import ProductPlan
from usage_sync.core.utils.time import to_utc_naive

BASE_DIR = Path(__file__).resolve().parents[3]

DOCKER_DATA_DIR = Path("/var/lib/usage-sync")


def _in_container() -> bool:
    return Path("/.dockerenv").exists() or Path("/run/.containerenv").exists()


def _default_home_dir() -> Path:
    if _in_container():
        return DOCKER_DATA_DIR
    return Path.home() / ".usage-sync"


DEFAULT_HOME_DIR = _default_home_dir()
DEFAULT_DB_PATH = DEFAULT_HOME_DIR / "store.db"
DEFAULT_USAGE_EPOCH_START = datetime(2020, 1, 1)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="USAGE_SYNC_",
        env_file=(BASE_DIR / ".env", BASE_DIR / ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = f"sqlite+aiosqlite:///{DEFAULT_DB_PATH}"
    database_replica_url: str | None = None
    database_pool_size: int = Field(default=15, gt=0)
    database_max_overflow: int = Field(default=10, ge=0)
    database_pool_timeout_seconds: float = Field(default=30.0, gt=0)
    metering_base_url: str = "http://localhost:3004/api/data"
    metering_token: str | None = None
    metering_fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    metering_fetch_max_retries: int = Field(default=0, ge=0)
    usage_epoch_start: datetime = DEFAULT_USAGE_EPOCH_START
    usage_sync_enabled: bool = True
    usage_sync_interval_seconds: int = Field(default=60 * 60, gt=0)
    billing_report_url: str | None = None
    billing_report_token: str | None = None
    billing_report_timeout_seconds: float = Field(default=30.0, gt=0)
    product_plans: dict[str, ProductPlan] = Field(default_factory=dict)

    @field_validator("database_url", "database_replica_url")
    @classmethod
    def _expand_database_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        for prefix in ("sqlite+aiosqlite:///", "sqlite:///"):
            if value.startswith(prefix):
                path = value[len(prefix) :]
                if path.startswith("~"):
                    return f"{prefix}{Path(path).expanduser()}"
        return value

    @field_validator("database_replica_url", "metering_token", "billing_report_url", "billing_report_token", mode="before")
    @classmethod
    def _blank_as_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("usage_epoch_start")
    @classmethod
    def _naive_utc_epoch_start(cls, value: datetime) -> datetime:
        return to_utc_naive(value)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
