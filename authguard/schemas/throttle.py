"""Pydantic schemas for throttling responses."""

from __future__ import annotations

from typing import Dict, Literal

from pydantic import BaseModel, Field


class ThrottleErrorResponse(BaseModel):
    """Body returned with HTTP 429."""

    status: Literal["error"] = "error"
    message: str = Field(..., description="Why the request was rejected.")
    retryAfter: int = Field(..., description="Seconds to wait before retrying.", ge=0)


class ThrottleStatsResponse(BaseModel):
    """Sizes of the in-memory throttling stores (no keys are exposed)."""

    trackers: Dict[str, Dict[str, float]] = Field(
        ...,
        description="Metrics per tracker: general, auth and lockout.",
    )
    sweeper_running: bool = Field(..., description="Whether the background sweep task is active.")
