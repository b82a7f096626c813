"""Identity scopes used to key throttling state.

A request is described by the client address and, on authentication
endpoints, the login identifier it claims. Each scope below is tracked
independently so "this IP" can be blocked separately from "this username":

- address scope: ``ip:{address}``
- identifier scope: ``user:{identifier}``
- combined scope: ``ip_user:{address}:{identifier}``
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import Request

UNKNOWN_ADDRESS = "unknown"


class EndpointClass(str, Enum):
    """Throttling profile of an endpoint."""

    GENERAL = "general"
    AUTH = "auth"


def normalize_identifier(identifier: str | None) -> str | None:
    """Trim and lowercase a login identifier; blank values become None.

    Examples:
        >>> normalize_identifier("  Alice@Example.COM ")
        'alice@example.com'
        >>> normalize_identifier("   ") is None
        True
    """
    if identifier is None:
        return None
    cleaned = identifier.strip().lower()
    return cleaned or None


@dataclass(frozen=True)
class Identity:
    """Who is making a request.

    Attributes:
        address: Client address, or ``"unknown"`` when it cannot be resolved.
        identifier: Normalized login identifier (email/username), if any.
    """

    address: str
    identifier: str | None = None

    @classmethod
    def build(cls, address: str | None, identifier: str | None = None) -> "Identity":
        """Create an identity, falling back to the shared sentinel address."""
        address = (address or "").strip() or UNKNOWN_ADDRESS
        return cls(address=address, identifier=normalize_identifier(identifier))

    @property
    def address_key(self) -> str:
        return f"ip:{self.address}"

    def scope_keys(self, endpoint_class: EndpointClass) -> list[str]:
        """Return every scope key that applies to this identity.

        The address scope always applies. Identifier and combined scopes are
        added only for AUTH endpoints that carry an identifier.
        """
        keys = [self.address_key]
        if endpoint_class is EndpointClass.AUTH and self.identifier:
            keys.append(f"user:{self.identifier}")
            keys.append(f"ip_user:{self.address}:{self.identifier}")
        return keys


def hash_key(key: str) -> str:
    """Hash an identity key for logging without exposing addresses or emails."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def resolve_client_address(request: Request, *, trust_forwarded_for: bool = False) -> str:
    """Resolve the client address for a request.

    Args:
        request: FastAPI request.
        trust_forwarded_for: Use the first ``X-Forwarded-For`` hop when the
            service runs behind a trusted proxy.

    Returns:
        str: Client address, or ``"unknown"`` when none can be determined.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_ADDRESS
