"""
JSON response helpers shared by the API routers.

API payloads are user- and organization-scoped; every response carries
`Cache-Control: private, no-store`. Entities are serialized with camelCase keys.
"""
from __future__ import annotations

from dataclasses import asdict, is_dataclass
from typing import Any, Iterable

from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel

PRIVATE_HEADERS = {"Cache-Control": "private, no-store"}


def to_api(obj: Any) -> Any:
    """Serialize a dataclass (or list of dataclasses) to camelCase JSON data."""
    if obj is None:
        return None
    if isinstance(obj, (list, tuple)):
        return [to_api(item) for item in obj]
    if is_dataclass(obj):
        return {to_camel(key): value for key, value in asdict(obj).items()}
    return obj


def json_private(payload: Any, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=payload, status_code=status_code, headers=dict(PRIVATE_HEADERS))


def private_error(error: str, *, status_code: int, detail: str | None = None, errors: Iterable[dict] | None = None) -> JSONResponse:
    body: dict[str, Any] = {"error": error}
    if detail:
        body["detail"] = detail
    if errors is not None:
        body["errors"] = list(errors)
    return JSONResponse(content=body, status_code=status_code, headers=dict(PRIVATE_HEADERS))


def forbidden(detail: str | None = None) -> JSONResponse:
    return private_error("forbidden", status_code=403, detail=detail)


def not_found() -> JSONResponse:
    return private_error("not_found", status_code=404)


def no_organization() -> JSONResponse:
    return private_error("bad_request", status_code=400, detail="no_organization")
