"""
Service error taxonomy and the handlers that turn it into HTTP responses.

Route handlers and services raise these; nothing below the request boundary
builds HTTP responses itself.
"""
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError


logger = structlog.get_logger(__name__)


class ServiceError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(ServiceError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Forbidden"


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class InvalidStateTransition(ServiceError):
    status_code = 400
    default_message = "Invalid state transition"


class StaleState(InvalidStateTransition):
    """Another request changed the record between read and write."""

    status_code = 409
    default_message = "The record was modified by another request, reload and retry"


class Conflict(ServiceError):
    status_code = 409
    default_message = "Conflict"


class UpstreamUnavailable(ServiceError):
    status_code = 503
    default_message = "Service Temporarily Unavailable"


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("service_error", path=request.url.path, error=exc.message)
    return _error_response(exc.status_code, exc.message)


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return _error_response(400, "; ".join(parts) or ValidationError.default_message)


async def _integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("integrity_error", path=request.url.path, error=str(exc.orig))
    return _error_response(409, "Conflicting record already exists")


async def _database_unavailable_handler(request: Request, exc: Exception):
    logger.error("database_unavailable", path=request.url.path, error=str(exc))
    return _error_response(503, "Database connection failed. Please try again later.")


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return _error_response(500, "Internal Server Error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(OperationalError, _database_unavailable_handler)
    app.add_exception_handler(InterfaceError, _database_unavailable_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
