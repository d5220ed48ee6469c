"""Render every failure into the ``{"status": "error", "message", "error"}`` envelope."""

import logging
import traceback
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from xfactor_api.core.config import settings
from xfactor_api.core.errors import AppError

logger = logging.getLogger("xfactor_api.errors")

# plain HTTP errors (router misses, form limits) mapped onto AppError codes
_HTTP_CODES = {
    400: "validation_error",
    401: "authentication_error",
    403: "authorization_error",
    404: "not_found",
    405: "method_not_allowed",
    413: "payload_too_large",
    429: "rate_limited",
}


def error_response(status_code: int, message: str, error: dict, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, "error": error},
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    error = exc.to_error()
    if settings.DEBUG and exc.__cause__ is not None:
        error["traceback"] = "".join(traceback.format_exception(exc.__cause__))
    return error_response(exc.status_code, exc.message, error)


async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail
    if isinstance(detail, dict):
        message = detail.get("message") or detail.get("error") or "Request failed"
        error = {k: v for k, v in detail.items() if k != "message"}
        error.setdefault("code", _HTTP_CODES.get(exc.status_code, "http_error"))
    else:
        message = str(detail) if detail else "Request failed"
        error = {"code": _HTTP_CODES.get(exc.status_code, "http_error")}
    return error_response(exc.status_code, message, error, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error %s %s: %s", request.method, request.url.path, exc.errors())
    detail = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return error_response(422, "Validation error", {"code": "validation_error", "detail": detail})


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.info("slowapi limit hit on %s: %s", request.url.path, exc.detail)
    return error_response(
        429,
        "Too many attempts, please try again later.",
        {"code": "rate_limited", "limit": str(exc.detail)},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Safe 500 with an error id that support can find in the logs."""
    error_id = uuid.uuid4().hex[:12]
    logger.error(
        "Unhandled exception [error_id=%s] %s %s: %s\n%s",
        error_id, request.method, request.url.path, exc, traceback.format_exc(),
    )
    error = {
        "code": "internal_error",
        "error_id": error_id,
        "detail": "An unexpected error occurred. Please contact support with the error_id.",
    }
    if settings.DEBUG:
        error["traceback"] = traceback.format_exc()
    return error_response(500, "Internal server error", error)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
