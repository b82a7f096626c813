"""Application factory for the FastAPI app.

Centralizes app construction (throttling state, middleware, handlers,
routers) so tests can build isolated instances with their own gate and clock.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from authguard.api.routes import auth_router, health_router, throttle_router
from authguard.core.auth import InMemoryCredentialStore
from authguard.core.config import settings
from authguard.core.exception_handlers import setup_exception_handlers
from authguard.core.logging import configure_logging
from authguard.core.middleware import request_id_middleware
from authguard.core.openapi import apply_openapi_customizations
from authguard.core.rate_limit import auth_outcome_middleware
from authguard.core.sweeper import Sweeper
from authguard.core.throttle import ThrottleGate, build_throttle_gate

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the sweeper for the lifetime of the application."""
    sweeper: Sweeper = app.state.sweeper
    sweeper.start()
    logger.info("app.started", extra={"app_env": settings.app_env})
    try:
        yield
    finally:
        await sweeper.stop()
        logger.info("app.stopped")


def create_app(
    *,
    gate: ThrottleGate | None = None,
    credential_store: InMemoryCredentialStore | None = None,
    sweep_interval_seconds: float | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        gate: Throttle gate to use; built from settings when omitted.
        credential_store: Credential store; built from settings when omitted.
        sweep_interval_seconds: Override for the sweep interval (0 disables
            the background task).

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="authguard",
        description=(
            "Request throttling and brute-force lockout service. Every request "
            "is checked against sliding-window limits per client address; login "
            "attempts are additionally tracked per address, identifier and their "
            "combination with exponentially growing blocks. Rejections return "
            "HTTP 429 with a retryAfter hint."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    if sweep_interval_seconds is None:
        sweep_interval_seconds = settings.throttle.sweep_interval_seconds

    app.state.throttle_gate = gate or build_throttle_gate(settings.throttle)
    app.state.credential_store = credential_store or InMemoryCredentialStore.from_settings()
    app.state.sweeper = Sweeper(app.state.throttle_gate, interval_seconds=sweep_interval_seconds)

    # Middleware: the last registered runs first, so request ids wrap everything
    app.middleware("http")(auth_outcome_middleware)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(auth_router, prefix="/v1")
    app.include_router(throttle_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
