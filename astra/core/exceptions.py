"""
Custom exception handling for Astra Reports.

This module defines custom exceptions and their handlers for the application,
ensuring every error carries a user-facing message and a correlation ID.
"""

import uuid
from typing import Optional, Dict, Any
from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# Base Exception Classes
# ============================================================================

class AstraException(Exception):
    """Base exception class for all Astra errors."""

    def __init__(
        self,
        message: str,
        user_message: str,
        status_code: int = 500,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.user_message = user_message
        self.status_code = status_code
        self.user_id = user_id
        self.details = details or {}
        self.correlation_id = str(uuid.uuid4())
        super().__init__(message)


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================

class InvalidTokenError(AstraException):
    """Raised when authentication token is invalid or expired."""

    def __init__(self, reason: str = "Invalid or expired token", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=reason,
            user_message="Your session has expired. Please sign in again.",
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


# ============================================================================
# Configuration Exceptions
# ============================================================================

class ConfigurationError(AstraException):
    """Raised when a required setting is missing; no network call is attempted."""

    def __init__(self, setting: str, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Configuration error: {setting} - {reason}",
            user_message=reason,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={**(details or {}), "setting": setting},
        )


# ============================================================================
# Rate Limiting Exceptions
# ============================================================================

class RateLimitExceededError(AstraException):
    """Raised when API rate limit is exceeded."""

    def __init__(
        self,
        retry_after: int,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f"Rate limit exceeded. Retry after {retry_after} seconds",
            user_message=f"Too many requests. Please try again in {retry_after} seconds.",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            user_id=user_id,
            details={**(details or {}), "retry_after": retry_after},
        )
        self.retry_after = retry_after


# ============================================================================
# External API Exceptions
# ============================================================================

class WebhookError(AstraException):
    """Raised when the report workflow webhook is unreachable or returns non-2xx."""

    def __init__(
        self,
        error_message: str,
        http_status: Optional[int] = None,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if http_status is not None:
            message = f"Webhook request failed: {http_status}"
        else:
            message = f"Webhook request failed: {error_message}"
        super().__init__(
            message=message,
            user_message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            user_id=user_id,
            details={**(details or {}), "http_status": http_status, "reason": error_message},
        )
        self.http_status = http_status


class GeminiError(AstraException):
    """Raised when Gemini text generation fails."""

    def __init__(
        self,
        error_message: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f"Gemini API error: {error_message}",
            user_message="Report text could not be generated. Please try again.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            user_id=user_id,
            details=details,
        )


# ============================================================================
# Persistence Exceptions
# ============================================================================

class PersistenceError(AstraException):
    """Raised when a row insert/update/delete fails."""

    def __init__(
        self,
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f"Failed to {operation}: {error_message}",
            user_message=f"Failed to {operation}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            user_id=user_id,
            details={**(details or {}), "operation": operation},
        )


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationError(AstraException):
    """Raised when input validation fails."""

    def __init__(self, field: str, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Validation error: {field} - {reason}",
            user_message=reason,
            status_code=status.HTTP_400_BAD_REQUEST,
            details={**(details or {}), "field": field},
        )


class NotFoundError(AstraException):
    """Raised when a resource is missing or owned by someone else.

    The two cases share one message so callers cannot test for existence.
    """

    def __init__(self, resource_type: str, resource_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"{resource_type} not found or access denied",
            user_message=f"{resource_type} not found or access denied",
            status_code=status.HTTP_404_NOT_FOUND,
            details={**(details or {}), "resource_type": resource_type, "resource_id": resource_id},
        )


# ============================================================================
# Exception Handlers
# ============================================================================

async def astra_exception_handler(request: Request, exc: AstraException) -> JSONResponse:
    """
    Generic handler for all AstraException instances.

    Logs the error with correlation ID and returns a JSON response with the
    user-facing message.
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"[{exc.correlation_id}] {exc.__class__.__name__}: {exc.message}",
        extra={
            "correlation_id": exc.correlation_id,
            "user_id": exc.user_id,
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method,
        }
    )

    response_content = {
        "error": exc.__class__.__name__,
        "message": exc.user_message,
        "correlation_id": exc.correlation_id,
    }

    if exc.details:
        response_content["details"] = exc.details

    return JSONResponse(
        status_code=exc.status_code,
        content=response_content,
        headers={"X-Correlation-ID": exc.correlation_id}
    )


async def rate_limit_error_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """
    Specialized handler for rate limit errors.

    Includes Retry-After header.
    """
    logger.warning(
        f"[{exc.correlation_id}] Rate limit exceeded for user {exc.user_id}",
        extra={
            "correlation_id": exc.correlation_id,
            "user_id": exc.user_id,
            "retry_after": exc.retry_after,
            "path": request.url.path,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "rate_limit_exceeded",
            "message": exc.user_message,
            "correlation_id": exc.correlation_id,
            "retry_after": exc.retry_after,
        },
        headers={
            "X-Correlation-ID": exc.correlation_id,
            "Retry-After": str(exc.retry_after),
        }
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Fallback handler for unhandled exceptions.

    Logs the error and returns a generic error message.
    """
    correlation_id = str(uuid.uuid4())

    logger.exception(
        f"[{correlation_id}] Unhandled exception: {str(exc)}",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again.",
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-ID": correlation_id}
    )


# ============================================================================
# Exception Handler Registration
# ============================================================================

def register_exception_handlers(app):
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    # Register specific handlers first
    app.add_exception_handler(RateLimitExceededError, rate_limit_error_handler)

    # Register generic handler for all AstraException instances
    app.add_exception_handler(AstraException, astra_exception_handler)

    # Register fallback handler for unhandled exceptions
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.info("Exception handlers registered successfully")
