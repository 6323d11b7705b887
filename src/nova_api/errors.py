"""
Domain error taxonomy and the JSON error envelope.

Service code raises NovaError subclasses; the handlers registered by
install_error_handlers() turn every failure into
{"success": false, "message": "..."} with a conventional status code.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class NovaError(Exception):
    """Base class for request-level failures raised by services."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(NovaError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(NovaError):
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDenied(NovaError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(NovaError):
    status_code = status.HTTP_404_NOT_FOUND


def error_body(message: str) -> dict:
    return {"success": False, "message": message}


def _describe_validation_error(exc: RequestValidationError) -> str:
    """Render the first pydantic error as '<field>: <reason>'."""
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    reason = first.get("msg", "Invalid value")
    if location:
        return f"{'.'.join(location)}: {reason}"
    return reason


async def _nova_error_handler(request: Request, exc: NovaError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(_describe_validation_error(exc)),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Server error"),
    )


# PUBLIC_INTERFACE
def install_error_handlers(app: FastAPI) -> None:
    """Register the envelope-producing exception handlers on the app."""
    app.add_exception_handler(NovaError, _nova_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
