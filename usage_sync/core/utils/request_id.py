from __future__ import annotations

from contextvars import ContextVar, Token
from uuid import uuid4

_REQUEST_ID: ContextVar[str | None] = ContextVar("usage_sync_request_id", default=None)


def get_request_id() -> str | None:
    return _REQUEST_ID.get()


def bind_request_id(value: str | None = None) -> tuple[str, Token[str | None]]:
    """Bind the incoming request id, or a fresh one, to the current context."""
    request_id = (value or "").strip() or uuid4().hex
    return request_id, _REQUEST_ID.set(request_id)


def reset_request_id(token: Token[str | None]) -> None:
    _REQUEST_ID.reset(token)
