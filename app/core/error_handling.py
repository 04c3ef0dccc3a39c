"""
Centralized error handling and response management.

This module provides the API exception hierarchy, standardized
`{"success": false, "message": ...}` error bodies and the exception
handlers registered on the application.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.logging import app_logger
from app.core.settings import settings


class APIException(HTTPException):
    """Base API exception with enhanced error handling."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code
        self.context = context or {}


class ValidationError(APIException):
    """Caller error: failed precondition or invalid state transition."""

    def __init__(
        self,
        detail: str,
        error_code: str = "VALIDATION_ERROR",
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code,
            context=context
        )


class NotFoundError(APIException):
    def __init__(self, resource: str, identifier: Any = None, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"{resource} not found",
            error_code="RESOURCE_NOT_FOUND",
            context={"resource": resource, "identifier": str(identifier)}
        )


class ForbiddenError(APIException):
    def __init__(self, detail: str = "Access denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN"
        )


class ConflictError(APIException):
    def __init__(self, detail: str, resource: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT",
            context={"resource": resource} if resource else {}
        )


class DependencyFailure(Exception):
    """A collaborator (email, in-app notification) failed.

    Never surfaced to API callers; the triggering state change stands.
    """

    def __init__(self, dependency: str, detail: str):
        super().__init__(f"{dependency}: {detail}")
        self.dependency = dependency
        self.detail = detail


class StandardErrorResponse(BaseModel):
    """Standardized error response schema."""
    model_config = ConfigDict(ser_json_timedelta='iso8601')

    success: bool = False
    message: str
    error_code: Optional[str] = None
    details: Optional[Union[str, Dict[str, Any]]] = None
    field_errors: Optional[Dict[str, List[str]]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None


def create_error_response(
    request: Request,
    status_code: int,
    message: str,
    error_code: Optional[str] = None,
    details: Optional[Union[str, Dict[str, Any]]] = None,
    field_errors: Optional[Dict[str, List[str]]] = None
) -> JSONResponse:
    """Create standardized error response."""

    request_id = getattr(request.state, "request_id", None)

    response_data = StandardErrorResponse(
        message=message,
        error_code=error_code,
        details=details,
        field_errors=field_errors,
        request_id=request_id
    )

    log = app_logger.error if status_code >= 500 else app_logger.warning
    log(
        f"API Error: {message}",
        extra={
            "status_code": status_code,
            "error_code": error_code,
            "request_id": request_id,
            "endpoint": request.url.path,
            "method": request.method,
            "client_ip": getattr(request.client, "host", "unknown")
        }
    )

    return JSONResponse(
        status_code=status_code,
        content=response_data.model_dump(mode='json')
    )


def log_exception(
    request: Request,
    exception: Exception,
    context: Optional[Dict[str, Any]] = None
):
    """Log an unexpected exception with request context."""

    app_logger.error(
        f"System exception: {str(exception)}",
        extra={
            "exception_type": exception.__class__.__name__,
            "request_id": getattr(request.state, "request_id", None),
            "endpoint": request.url.path,
            "method": request.method,
            "client_ip": getattr(request.client, "host", "unknown"),
            **(context or {})
        },
        exc_info=exception
    )


def handle_validation_error(
    request: Request,
    validation_errors: List[Dict[str, Any]]
) -> JSONResponse:
    """Handle request body validation errors with field information."""

    field_errors = {}
    for error in validation_errors:
        field = ".".join(str(loc) for loc in error.get("loc", []))
        message = error.get("msg", "Invalid value")
        field_errors.setdefault(field, []).append(message)

    return create_error_response(
        request=request,
        status_code=422,
        message="Validation failed",
        error_code="VALIDATION_ERROR",
        field_errors=field_errors
    )


def register_exception_handlers(app: FastAPI):
    """Register all exception handlers."""

    @app.exception_handler(APIException)
    async def api_exception_handler(request: Request, exc: APIException):
        return create_error_response(
            request=request,
            status_code=exc.status_code,
            message=exc.detail,
            error_code=exc.error_code,
            details=exc.context or None
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        return handle_validation_error(request, exc.errors())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return create_error_response(
            request=request,
            status_code=exc.status_code,
            message=str(exc.detail) if exc.detail else "HTTP error occurred",
            error_code="HTTP_ERROR"
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        log_exception(request, exc, {"unexpected": True})
        is_production = settings.environment == "production"
        return create_error_response(
            request=request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Internal server error",
            error_code="INTERNAL_ERROR",
            details=None if is_production else str(exc)[:500]
        )
