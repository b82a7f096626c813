from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness probe for load balancers.

    Not throttled: probes succeed even while the caller is rate limited or
    locked out. The ``sweeper`` field reports whether the background cleanup
    task is alive.
    """

    sweeper = getattr(request.app.state, "sweeper", None)
    return {
        "status": "ok",
        "sweeper": "running" if sweeper is not None and sweeper.running else "stopped",
    }
