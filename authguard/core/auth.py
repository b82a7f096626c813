"""Credential checks used by the HTTP layer.

Two concerns live here:
- Admin API keys guarding operational endpoints (throttle stats).
- An in-memory credential store backing the login and registration
  endpoints. Password hashing policy and token issuance belong to the
  identity provider in front of this service; the store only keeps SHA-256
  digests so login outcomes can drive the lockout tracker.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import threading
from typing import Annotated

from fastapi import Header, Request

from authguard.core.config import settings
from authguard.core.errors import (
    AuthenticationAppError,
    AuthorizationAppError,
    ConflictAppError,
    ValidationAppError,
)
from authguard.core.identity import hash_key, normalize_identifier

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def parse_user_credentials(users_string: str | None) -> dict[str, str]:
    """Parse ``identifier:sha256hex`` pairs into a lookup table.

    Identifiers are normalized the same way as throttle keys; digests are
    lowercased. Malformed entries are skipped with a warning.

    Args:
        users_string: Comma-separated pairs, or None.

    Returns:
        Mapping of normalized identifier to password digest.
    """
    credentials: dict[str, str] = {}
    if not users_string:
        return credentials

    for entry in users_string.split(","):
        identifier, sep, digest = entry.strip().rpartition(":")
        identifier = normalize_identifier(identifier)
        digest = digest.strip().lower()
        if not sep or not identifier or not digest:
            if entry.strip():
                logger.warning("auth.user_entry_skipped", extra={"reason": "malformed"})
            continue
        credentials[identifier] = digest
    return credentials


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


class InMemoryCredentialStore:
    """Identifier → password digest table for login and registration.

    Seeded from ``APP_USERS``; accounts created through registration live
    only as long as the process.
    """

    def __init__(self, credentials: dict[str, str]) -> None:
        self._credentials = dict(credentials)
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "InMemoryCredentialStore":
        return cls(parse_user_credentials(settings.app.users))

    def verify(self, identifier: str | None, password: str) -> str:
        """Validate credentials and return the normalized identifier.

        Raises:
            AuthenticationAppError: If the identifier is unknown or the
                password does not match. Both cases share one message.
        """
        normalized = normalize_identifier(identifier)
        with self._lock:
            expected = self._credentials.get(normalized or "", "")
        matched = hmac.compare_digest(hash_password(password).encode(), expected.encode())
        if not expected or not matched:
            logger.info(
                "auth.login_failed",
                extra={"identifier_hash": hash_key(normalized or "")},
            )
            raise AuthenticationAppError(
                code="invalid_credentials",
                message="Invalid email or password",
            )

        logger.info("auth.login_succeeded", extra={"identifier_hash": hash_key(normalized)})
        return normalized

    def register(self, identifier: str | None, password: str) -> str:
        """Create an account and return its normalized identifier.

        Raises:
            ValidationAppError: If the identifier is blank.
            ConflictAppError: If the identifier is already registered.
        """
        normalized = normalize_identifier(identifier)
        if normalized is None:
            raise ValidationAppError(
                code="identifier_required",
                message="Email or username is required",
            )

        with self._lock:
            if normalized in self._credentials:
                logger.info("auth.register_conflict", extra={"identifier_hash": hash_key(normalized)})
                raise ConflictAppError(
                    code="identifier_taken",
                    message="An account with this email or username already exists",
                )
            self._credentials[normalized] = hash_password(password)

        logger.info("auth.registered", extra={"identifier_hash": hash_key(normalized)})
        return normalized

    def __contains__(self, identifier: object) -> bool:
        if not isinstance(identifier, str):
            return False
        with self._lock:
            return normalize_identifier(identifier) in self._credentials


def get_credential_store(request: Request) -> InMemoryCredentialStore:
    """Return the credential store built for this application instance."""
    return request.app.state.credential_store


def validate_admin_key(provided_key: str | None) -> None:
    """Validate an admin API key against configuration.

    Raises:
        AuthorizationAppError: If no keys are configured or the key is wrong.
    """
    valid_keys = parse_api_keys(settings.app.admin_api_keys)

    if not valid_keys:
        logger.error(
            "admin_key_validation_failed",
            extra={"reason": "admin_keys_not_configured"},
        )
        raise AuthorizationAppError(
            code="admin_keys_not_configured",
            message="Admin endpoints are disabled: no admin API keys are configured",
            details={"hint": "Set APP_ADMIN_API_KEYS to enable them"},
        )

    if not provided_key or not any(
        hmac.compare_digest(provided_key.encode(), key.encode()) for key in valid_keys
    ):
        logger.warning(
            "admin_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "key_present": bool(provided_key),
            },
        )
        raise AuthorizationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_admin_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency guarding admin endpoints with ``X-API-Key``.

    Usage:
        @router.get("/throttle/stats", dependencies=[Depends(verify_admin_key)])

    Raises:
        AuthorizationAppError: Rendered as 403 by the exception handlers.
    """
    validate_admin_key(x_api_key)
