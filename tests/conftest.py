"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import that loads settings, so
the tests never depend on a local .env file.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("THROTTLE_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from authguard.core.auth import InMemoryCredentialStore, hash_password


class FakeClock:
    """Deterministic clock used to drive windows and blocks."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore(
        {
            "test@x.com": hash_password("correct-horse"),
            "alice": hash_password("alice-pass"),
        }
    )
