from __future__ import annotations

from typing import TypedDict


class ApiErrorDetail(TypedDict):
    code: str
    message: str


class ApiErrorEnvelope(TypedDict):
    error: ApiErrorDetail


def api_error(code: str, message: str) -> ApiErrorEnvelope:
    return {"error": {"code": code, "message": message}}
