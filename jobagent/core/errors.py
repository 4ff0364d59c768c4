from __future__ import annotations

from datetime import datetime, timezone
import logging
import traceback
from typing import Any

from fastapi import FastAPI, HTTPException, status as http_status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from jobagent.core.config import get_settings

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """HTTP failure carrying a stable error code and a retry hint."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        *,
        retryable: bool = False,
        details: Any = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message)
        self.code = code
        self.message = message
        self.retryable = retryable
        self.details = details


def error_body(
    code: str,
    message: str,
    *,
    retryable: bool,
    details: Any = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "timestamp": (now or datetime.now(timezone.utc)).isoformat(),
    }
    if details is not None and not get_settings().is_production:
        body["details"] = details
    return {"error": body}


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _handle_api_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)


async def _handle_api_error(_: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, retryable=exc.retryable, details=exc.details),
    )


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == http_status.HTTP_404_NOT_FOUND:
        code, message = "NOT_FOUND", f"Route {request.method} {request.url.path} not found"
    else:
        code, message = "HTTP_ERROR", str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content=error_body(code, message, retryable=False))


async def _handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=error_body(
            "VALIDATION_ERROR",
            "Request validation failed",
            retryable=False,
            details=jsonable_errors(exc),
        ),
    )


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error method=%s path=%s", request.method, request.url.path)
    return JSONResponse(
        status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            "INTERNAL_SERVER_ERROR",
            "An unexpected error occurred",
            retryable=True,
            details={"error": str(exc), "stack": traceback.format_exception(exc)},
        ),
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": str(error.get("msg", ""))}
        for error in exc.errors()
    ]
