"""
Error handling for the dashboard API

Every error response has the same JSON body:
``{"error": <code>, "message": <text>, "path": <request path>}``
plus ``details`` for request validation failures.

LAPI failures that reach a route unhandled are answered with 502 and
LAPI's message, so the UI can show what CrowdSec actually said.
"""
import logging
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError

from crowdsec_dashboard.lapi.client import LapiError

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for errors raised by services and routes"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "INTERNAL_ERROR"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    default_message = "Resource not found"

    def __init__(self, message: str = None, resource_type: str = "resource"):
        super().__init__(message)
        self.resource_type = resource_type


class ForbiddenError(APIError):
    """Operation not allowed on this resource"""
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN"
    default_message = "Operation not allowed"


class ConflictError(APIError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    default_message = "Resource already exists"


class UpstreamError(APIError):
    """CrowdSec LAPI call failed; message is the upstream error verbatim"""
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "UPSTREAM_ERROR"
    default_message = "CrowdSec LAPI request failed"


def error_response(request: Request, status_code: int, error: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "path": request.url.path, **extra},
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    logger.error(
        f"API error: {exc.error_code} - {exc.message}",
        extra={"status_code": exc.status_code, "path": request.url.path}
    )
    return error_response(request, exc.status_code, exc.error_code, exc.message)


async def lapi_error_handler(request: Request, exc: LapiError) -> JSONResponse:
    logger.error(
        f"LAPI error on {request.url.path}: {exc}",
        extra={"status_code": exc.status_code, "path": request.url.path}
    )
    return error_response(request, UpstreamError.status_code, UpstreamError.error_code, str(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    logger.warning(f"Validation error: {errors}", extra={"path": request.url.path})
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Request validation failed",
        details=errors,
    )


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Map database errors to 409 / 503 / 500 without leaking SQL"""
    logger.error(f"Database error: {str(exc)}", extra={"path": request.url.path}, exc_info=True)

    if isinstance(exc, IntegrityError):
        return error_response(
            request, status.HTTP_409_CONFLICT,
            "INTEGRITY_ERROR", "Database integrity constraint violated",
        )
    if isinstance(exc, OperationalError):
        return error_response(
            request, status.HTTP_503_SERVICE_UNAVAILABLE,
            "DATABASE_UNAVAILABLE", "Database is currently unavailable",
        )
    return error_response(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR,
        "DATABASE_ERROR", "An unexpected database error occurred",
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception: {str(exc)}", extra={"path": request.url.path}, exc_info=True)
    return error_response(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR,
        APIError.error_code, APIError.default_message,
    )


def register_error_handlers(app):
    """Register all error handlers with the FastAPI app"""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(LapiError, lapi_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    logger.info("Error handlers registered")
