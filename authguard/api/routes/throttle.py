from fastapi import APIRouter, Depends, Request

from authguard.core.auth import verify_admin_key
from authguard.core.rate_limit import enforce_general_throttle, get_throttle_gate
from authguard.schemas.throttle import ThrottleErrorResponse, ThrottleStatsResponse

router = APIRouter(prefix="/throttle", tags=["Throttle"])


@router.get(
    "/stats",
    response_model=ThrottleStatsResponse,
    dependencies=[Depends(enforce_general_throttle), Depends(verify_admin_key)],
    responses={429: {"model": ThrottleErrorResponse}},
)
def throttle_stats(request: Request) -> ThrottleStatsResponse:
    """Report how much state each throttling store holds."""

    sweeper = getattr(request.app.state, "sweeper", None)
    return ThrottleStatsResponse(
        trackers=get_throttle_gate(request).stats(),
        sweeper_running=bool(sweeper and sweeper.running),
    )
