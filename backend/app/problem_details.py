"""DomainError to ``application/problem+json`` (RFC 7807).

Every error response carries the stable domain ``code`` next to the standard
fields so webhook senders and the dashboard can branch on it. The app-level
handler also fills ``instance`` with the request path.
"""
from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import Request
from fastapi.responses import JSONResponse

from .domain_errors import DomainError

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://api.custom-ops.local/problems"


def _title_for(http_status: int) -> str:
    try:
        return HTTPStatus(http_status).phrase
    except ValueError:
        return "Domain Error"


def build_problem_details_response(exc: DomainError, *, instance: str | None = None) -> JSONResponse:
    payload: dict[str, object] = {
        "type": f"{PROBLEM_TYPE_BASE}/{exc.code.lower()}",
        "title": _title_for(exc.http_status),
        "status": exc.http_status,
        "detail": exc.message,
        "code": exc.code,
    }
    if instance:
        payload["instance"] = instance
    if exc.details is not None:
        payload["details"] = exc.details

    return JSONResponse(status_code=exc.http_status, content=payload, media_type="application/problem+json")


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.warning(f"{request.method} {request.url.path} failed upstream: {exc.code} {exc.message}")
    return build_problem_details_response(exc, instance=request.url.path)
