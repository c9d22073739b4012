from __future__ import annotations

"""
Exception -> RFC7807 "problem+json" mappers for FastAPI.

- Produces ``application/problem+json`` for:
    * ApiError subclasses (playground_services.errors)
    * Starlette/FastAPI HTTPException
    * RequestValidationError
    * Unhandled exceptions (500)
- Never leaks stack traces in responses; logs them instead.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import ApiError
from ..logging import get_logger

PROBLEM_CT = "application/problem+json"

log = get_logger(__name__)

_TITLES = {
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def _problem(
    request: Request,
    *,
    status: int,
    title: str,
    detail: str = "",
    type_uri: str = "about:blank",
    extras: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    prob: Dict[str, Any] = {
        "type": type_uri,
        "title": title,
        "status": status,
        "detail": detail,
        "instance": str(request.url.path),
    }
    for k, v in (extras or {}).items():
        prob.setdefault(k, v)
    return prob


# --------------------------- Handlers ---------------------------


async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    body = exc.to_problem()
    body["instance"] = str(request.url.path)
    if exc.status_code >= 500:
        log.error("api_error", **body)
    else:
        log.warning("api_error", **body)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body), media_type=PROBLEM_CT)


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    status = int(exc.status_code)
    body = _problem(
        request,
        status=status,
        title=_TITLES.get(status, "Error"),
        detail=str(exc.detail) if exc.detail else "",
    )
    (log.warning if 400 <= status < 500 else log.error)("http_exception", **body)
    return JSONResponse(status_code=status, content=body, media_type=PROBLEM_CT)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    body = _problem(
        request,
        status=422,
        title=_TITLES[422],
        detail="Request validation failed.",
        extras={"errors": jsonable_encoder(exc.errors())},
    )
    log.warning("validation_error", path=body["instance"])
    return JSONResponse(status_code=422, content=body, media_type=PROBLEM_CT)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    body = _problem(
        request,
        status=500,
        title=_TITLES[500],
        detail="An unexpected error occurred.",
    )
    # Diagnostics go to the log only.
    log.exception("unhandled_exception", **{**body, **ApiError.from_unexpected(exc).to_problem()})
    return JSONResponse(status_code=500, content=body, media_type=PROBLEM_CT)


# --------------------------- Installer ---------------------------


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _handle_api_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _handle_unexpected_error)


__all__ = ["install_error_handlers", "PROBLEM_CT"]
