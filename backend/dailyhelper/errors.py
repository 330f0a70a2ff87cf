"""Error taxonomy and the handlers that turn it into HTTP responses.

Every failure a caller can see maps to one subclass of
:class:`DailyHelperError`; the status code travels with the exception so
routers and services never build responses for errors themselves.
"""
from __future__ import annotations

import traceback
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger


class DailyHelperError(Exception):
    """Base exception for the API; carries status code and a stable error code."""

    status_code = 500
    code = "ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def headers(self) -> dict[str, str] | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            result["details"] = self.details
        return result


class AuthenticationError(DailyHelperError):
    """Missing, malformed, badly signed or expired credentials."""

    status_code = 401
    code = "AUTHENTICATION_FAILED"

    @property
    def headers(self) -> dict[str, str] | None:
        return {"WWW-Authenticate": "Bearer"}


class AuthorizationError(DailyHelperError):
    status_code = 403
    code = "FORBIDDEN"


class ValidationError(DailyHelperError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(DailyHelperError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found: {entity_id}", {"entity": entity, "id": entity_id})


class ConflictError(DailyHelperError):
    status_code = 409
    code = "CONFLICT"


class StorageError(DailyHelperError):
    """Connection or constraint failure in the relational store."""

    status_code = 500
    code = "STORAGE_ERROR"


async def dailyhelper_exception_handler(request: Request, exc: DailyHelperError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
    else:
        logger.info("{} {} rejected ({}): {}", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors (400), not 422."""
    errors = jsonable_encoder(exc.errors())
    err = ValidationError("Request validation failed", {"errors": errors})
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


def unhandled_exception_handler(dev_mode: bool):
    """Build the catch-all handler; DEV_MODE responses include the traceback."""

    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error("Unexpected error on {} {}", request.method, request.url.path)
        content: dict[str, Any] = {"detail": "An unexpected error occurred", "code": "INTERNAL_ERROR"}
        if dev_mode:
            content["exception"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "traceback": traceback.format_exception(type(exc), exc, exc.__traceback__),
            }
        return JSONResponse(status_code=500, content=content)

    return handler


__all__ = [
    "DailyHelperError", "AuthenticationError", "AuthorizationError", "ValidationError",
    "NotFoundError", "ConflictError", "StorageError",
    "dailyhelper_exception_handler", "request_validation_exception_handler", "unhandled_exception_handler",
]
