"""Throttling dependencies and outcome middleware for FastAPI routes.

This module wires the throttle gate into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Swap-friendly: the gate is built at startup and stored on ``app.state``, so
  tests and alternative backends inject their own instance.
- Shared fate: a request with no resolvable address is throttled under the
  ``"unknown"`` key instead of bypassing the limits.

Request lifecycle:
1. ``enforce_general_throttle`` / ``enforce_auth_throttle`` /
   ``enforce_register_throttle`` ask the gate for a decision and raise
   ``ThrottledError`` (HTTP 429) on rejection.
2. Admitted login requests leave their identity on ``request.state``.
3. ``auth_outcome_middleware`` reads the final status code and reports
   success (2xx) or failure (401) back to the gate.
"""

from __future__ import annotations

import logging

from fastapi import Request, Response

from authguard.core.config import settings
from authguard.core.errors import ThrottledError
from authguard.core.identity import EndpointClass, Identity, hash_key, resolve_client_address
from authguard.core.throttle import REGISTER_ENDPOINT, ThrottleGate

logger = logging.getLogger(__name__)

LOGIN_IDENTIFIER_FIELDS = ("email", "username")


def get_throttle_gate(request: Request) -> ThrottleGate:
    """Return the gate built for this application instance."""
    return request.app.state.throttle_gate


async def _read_login_identifier(request: Request) -> str | None:
    """Extract the claimed login identifier from a JSON body, if present."""
    try:
        payload = await request.json()
    except ValueError:
        return None

    if not isinstance(payload, dict):
        return None

    for field in LOGIN_IDENTIFIER_FIELDS:
        value = payload.get(field)
        if isinstance(value, str) and value.strip():
            return value
    return None


async def _enforce(
    request: Request,
    endpoint_class: EndpointClass,
    *,
    endpoint: str | None = None,
    track_outcome: bool = True,
) -> Identity | None:
    if not settings.throttle.enabled:
        return None

    address = resolve_client_address(
        request,
        trust_forwarded_for=settings.throttle.trust_forwarded_for,
    )
    identifier = None
    if endpoint_class is EndpointClass.AUTH:
        identifier = await _read_login_identifier(request)
    identity = Identity.build(address, identifier)

    decision = get_throttle_gate(request).check(identity, endpoint_class, endpoint=endpoint)
    if not decision.allowed:
        raise ThrottledError(
            code="locked_out" if decision.reason == "lockout" else "rate_limited",
            message=decision.message or "Too many requests, please try again later.",
            details={
                "retry_after": decision.retry_after_seconds,
                "reason": decision.reason or "rate_limit",
            },
        )

    logger.debug(
        "throttle.admitted",
        extra={
            "endpoint_class": endpoint_class.value,
            "endpoint": endpoint,
            "key_hash": hash_key(identity.address_key),
        },
    )
    if track_outcome:
        request.state.throttle_identity = identity
        request.state.throttle_endpoint_class = endpoint_class
    return identity


async def enforce_general_throttle(request: Request) -> Identity | None:
    """FastAPI dependency applying the general per-address limit.

    Raises:
        ThrottledError: When the caller is locked out or over the limit.
    """
    return await _enforce(request, EndpointClass.GENERAL)


async def enforce_auth_throttle(request: Request) -> Identity | None:
    """FastAPI dependency for login endpoints.

    Checks lockout across the address, identifier and combined scopes, then
    the general and auth limits. The admitted identity is kept on
    ``request.state`` so the outcome middleware can record the result.

    Raises:
        ThrottledError: When the caller is locked out or over a limit.
    """
    return await _enforce(request, EndpointClass.AUTH)


async def enforce_register_throttle(request: Request) -> Identity | None:
    """FastAPI dependency for the registration endpoint.

    Same lockout and limiter checks as login, plus the stricter per-address
    registration limiter. Registration results are not authentication
    outcomes, so they never change lockout counters.

    Raises:
        ThrottledError: When the caller is locked out or over a limit.
    """
    return await _enforce(
        request,
        EndpointClass.AUTH,
        endpoint=REGISTER_ENDPOINT,
        track_outcome=False,
    )


async def auth_outcome_middleware(request: Request, call_next) -> Response:
    """Report authentication outcomes to the gate once the status is known.

    Only requests admitted by ``enforce_auth_throttle`` are considered:
    401 counts as a failure, any 2xx as a success, everything else is ignored.
    """
    request.state.throttle_identity = None
    request.state.throttle_endpoint_class = None

    response: Response = await call_next(request)

    identity = getattr(request.state, "throttle_identity", None)
    endpoint_class = getattr(request.state, "throttle_endpoint_class", None)
    if identity is None or endpoint_class is not EndpointClass.AUTH:
        return response

    if response.status_code == 401:
        get_throttle_gate(request).on_outcome(identity, success=False)
    elif 200 <= response.status_code < 300:
        get_throttle_gate(request).on_outcome(identity, success=True)
    return response
