"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- ThrottledError → 429 with ``{status, message, retryAfter}`` and Retry-After
- AppError subclasses → appropriate HTTP status (400, 401, 403, 409)
- Unexpected Exception → generic 500 (safety net)
- Error responses include request_id for distributed tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from authguard.core.errors import (
    AppError,
    AuthenticationAppError,
    AuthorizationAppError,
    ConflictAppError,
    ThrottledError,
)
from authguard.core.logging import get_request_id

logger = logging.getLogger(__name__)


async def throttled_error_handler(request: Request, exc: ThrottledError) -> JSONResponse:
    """Turn a throttle rejection into the 429 contract.

    The body always carries ``retryAfter`` in seconds; the same value is sent
    in the standard ``Retry-After`` header.

    Args:
        request: FastAPI request object.
        exc: ThrottledError raised by a throttle dependency.

    Returns:
        JSONResponse with status 429.
    """
    retry_after = max(0, exc.retry_after)
    logger.info(
        "throttled_request",
        extra={
            "error_code": exc.code,
            "retry_after_s": retry_after,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=429,
        content={
            "status": "error",
            "message": exc.message,
            "retryAfter": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Routes domain errors to appropriate HTTP status codes:
    - ValidationAppError → 400 Bad Request (client fault)
    - AuthenticationAppError → 401 Unauthorized (bad credentials)
    - AuthorizationAppError → 403 Forbidden (missing privileges)
    - ConflictAppError → 409 Conflict (resource already exists)

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = 400
    if isinstance(exc, AuthenticationAppError):
        status_code = 401
    elif isinstance(exc, AuthorizationAppError):
        status_code = 403
    elif isinstance(exc, ConflictAppError):
        status_code = 409

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        }
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }

    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message.
    Prevents information leakage (no stack traces to client).

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Specific handlers are registered before the general fallback.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(ThrottledError)(throttled_error_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
