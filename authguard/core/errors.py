"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: int
    reason: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when credentials are rejected."""


class AuthorizationAppError(AppError):
    """Raised when a caller lacks access to an operation."""


class ConflictAppError(AppError):
    """Raised when a resource already exists (e.g., a taken identifier)."""


class ThrottledError(AppError):
    """Raised when the throttle gate rejects a request.

    Not a failure of the service: it carries the policy decision and the
    ``retry_after`` hint (seconds) that the 429 response must include.
    """

    @property
    def retry_after(self) -> int:
        return int((self.details or {}).get("retry_after", 0))
