"""Request-facing throttle decision point.

The gate combines the lockout tracker with the stacked sliding-window
limiters and answers one question per request: admit, or reject with a
retry-after hint.

Order of evaluation:
1. Lockout across every identity scope (the longest block wins).
2. The general limiter, then the auth limiter for AUTH endpoints, then the
   limiter of the named endpoint (e.g., ``register``) when one is given.
3. Admit.

A request rejected by a later limiter has already used one slot of each
earlier limiter. That slot is not given back, so stacked limits count every
attempt that reached them.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping

from authguard.adapters.rate_limit.base import AbstractLockoutTracker, AbstractRateLimiter
from authguard.adapters.rate_limit.lockout import InMemoryLockoutTracker
from authguard.adapters.rate_limit.sliding_window import InMemorySlidingWindowRateLimiter
from authguard.core.config import ThrottleSettings
from authguard.core.identity import EndpointClass, Identity, hash_key
from authguard.core.logging import log_security

logger = logging.getLogger(__name__)

LOCKOUT_MESSAGE = "Too many failed login attempts. Please try again later."
RATE_LIMIT_MESSAGE = "Too many requests, please try again later."
AUTH_RATE_LIMIT_MESSAGE = "Too many login attempts, please try again later."

REGISTER_ENDPOINT = "register"

ENDPOINT_RATE_LIMIT_MESSAGES = {
    REGISTER_ENDPOINT: "Too many registration attempts, please try again later.",
}


@dataclass(frozen=True)
class ThrottleDecision:
    """Outcome of a gate check.

    Attributes:
        allowed: Whether the request may proceed.
        retry_after_seconds: Seconds the client should wait (0 when allowed).
        reason: ``lockout`` or ``rate_limit`` when rejected, None otherwise.
        message: Client-facing explanation when rejected.
    """

    allowed: bool
    retry_after_seconds: int = 0
    reason: str | None = None
    message: str | None = None


ALLOW = ThrottleDecision(allowed=True)


class ThrottleGate:
    """Single entry point consulted for every throttled request."""

    def __init__(
        self,
        *,
        general_limiter: AbstractRateLimiter,
        lockout: AbstractLockoutTracker,
        auth_limiter: AbstractRateLimiter | None = None,
        endpoint_limiters: Mapping[str, AbstractRateLimiter] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._general_limiter = general_limiter
        self._auth_limiter = auth_limiter
        self._endpoint_limiters = dict(endpoint_limiters or {})
        self._lockout = lockout
        self._clock = clock

    @property
    def lockout(self) -> AbstractLockoutTracker:
        return self._lockout

    def _limiters_for(
        self,
        endpoint_class: EndpointClass,
        endpoint: str | None,
    ) -> list[tuple[str, AbstractRateLimiter]]:
        limiters = [("general", self._general_limiter)]
        if endpoint_class is EndpointClass.AUTH and self._auth_limiter is not None:
            limiters.append(("auth", self._auth_limiter))
        if endpoint is not None:
            if endpoint not in self._endpoint_limiters:
                raise ValueError(f"no limiter configured for endpoint {endpoint!r}")
            limiters.append((endpoint, self._endpoint_limiters[endpoint]))
        return limiters

    def check(
        self,
        identity: Identity,
        endpoint_class: EndpointClass,
        *,
        endpoint: str | None = None,
        now: float | None = None,
    ) -> ThrottleDecision:
        """Decide whether a request may proceed and record it when admitted.

        Args:
            identity: Address and optional login identifier of the caller.
            endpoint_class: Throttling profile of the endpoint.
            endpoint: Name of an endpoint with its own limiter, stacked after
                the class limiters.
            now: Optional timestamp override; defaults to the gate clock.

        Returns:
            ThrottleDecision describing the outcome.
        """
        if now is None:
            now = self._clock()

        limiters = self._limiters_for(endpoint_class, endpoint)
        scope_keys = identity.scope_keys(endpoint_class)
        remaining = self._lockout.is_blocked_any(scope_keys, now=now)
        if remaining is not None:
            log_security(
                logger,
                "throttle.rejected",
                reason="lockout",
                endpoint_class=endpoint_class.value,
                key_hash=hash_key(identity.address_key),
                retry_after_s=remaining,
            )
            return ThrottleDecision(
                allowed=False,
                retry_after_seconds=max(0, remaining),
                reason="lockout",
                message=LOCKOUT_MESSAGE,
            )

        for name, limiter in limiters:
            result = limiter.consume(identity.address_key, now=now)
            if result.allowed:
                continue

            retry_after = result.retry_after_seconds or 0
            log_security(
                logger,
                "throttle.rejected",
                reason="rate_limit",
                limiter=name,
                endpoint_class=endpoint_class.value,
                key_hash=hash_key(identity.address_key),
                limit=result.limit,
                retry_after_s=retry_after,
            )
            if name == "auth":
                message = AUTH_RATE_LIMIT_MESSAGE
            else:
                message = ENDPOINT_RATE_LIMIT_MESSAGES.get(name, RATE_LIMIT_MESSAGE)
            return ThrottleDecision(
                allowed=False,
                retry_after_seconds=retry_after,
                reason="rate_limit",
                message=message,
            )

        return ALLOW

    def on_outcome(
        self,
        identity: Identity,
        success: bool,
        *,
        endpoint_class: EndpointClass = EndpointClass.AUTH,
        now: float | None = None,
    ) -> None:
        """Feed an authentication result back into the lockout tracker.

        Failures and successes fan out to every scope of the identity, so a
        single failed login moves the address, identifier and combined
        counters at once. Only AUTH endpoints are tracked.
        """
        if endpoint_class is not EndpointClass.AUTH:
            return

        scope_keys = identity.scope_keys(EndpointClass.AUTH)
        if success:
            self._lockout.record_success_all(scope_keys)
            return

        if now is None:
            now = self._clock()
        self._lockout.record_failure_all(scope_keys, now=now)

    def sweep(self, *, now: float | None = None) -> dict[str, int]:
        """Reclaim expired state in every tracker.

        Returns:
            Removed entry counts keyed by tracker name.
        """
        if now is None:
            now = self._clock()

        removed = {"general": self._general_limiter.sweep(now=now)}
        if self._auth_limiter is not None:
            removed["auth"] = self._auth_limiter.sweep(now=now)
        for name, limiter in self._endpoint_limiters.items():
            removed[name] = limiter.sweep(now=now)
        removed["lockout"] = self._lockout.sweep(now=now)
        return removed

    def stats(self) -> dict[str, dict[str, int | float]]:
        stats = {"general": self._general_limiter.stats()}
        if self._auth_limiter is not None:
            stats["auth"] = self._auth_limiter.stats()
        for name, limiter in self._endpoint_limiters.items():
            stats[name] = limiter.stats()
        stats["lockout"] = self._lockout.stats()
        return stats


def build_throttle_gate(
    throttle_settings: ThrottleSettings,
    *,
    clock: Callable[[], float] = time.time,
) -> ThrottleGate:
    """Build a gate with in-memory trackers from configuration.

    Args:
        throttle_settings: Resolved throttle policy.
        clock: Time source shared by every tracker.

    Returns:
        ThrottleGate ready to be stored on the application state.
    """
    return ThrottleGate(
        general_limiter=InMemorySlidingWindowRateLimiter(
            limit=throttle_settings.general_max_requests,
            window_seconds=throttle_settings.general_window_seconds,
            clock=clock,
            name="general",
        ),
        auth_limiter=InMemorySlidingWindowRateLimiter(
            limit=throttle_settings.auth_max_requests,
            window_seconds=throttle_settings.auth_window_seconds,
            clock=clock,
            name="auth",
        ),
        endpoint_limiters={
            REGISTER_ENDPOINT: InMemorySlidingWindowRateLimiter(
                limit=throttle_settings.register_max_requests,
                window_seconds=throttle_settings.register_window_seconds,
                clock=clock,
                name=REGISTER_ENDPOINT,
            ),
        },
        lockout=InMemoryLockoutTracker(
            max_consecutive_failures=throttle_settings.max_consecutive_failures,
            initial_block_seconds=throttle_settings.initial_block_seconds,
            max_block_seconds=throttle_settings.max_block_seconds,
            failure_window_seconds=throttle_settings.failure_window_seconds,
            clock=clock,
        ),
        clock=clock,
    )
