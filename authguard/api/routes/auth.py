from fastapi import APIRouter, Depends

from authguard.core.auth import InMemoryCredentialStore, get_credential_store
from authguard.core.rate_limit import enforce_auth_throttle, enforce_register_throttle
from authguard.schemas.auth import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from authguard.schemas.throttle import ThrottleErrorResponse

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    dependencies=[Depends(enforce_auth_throttle)],
    responses={429: {"model": ThrottleErrorResponse}},
)
async def login(
    payload: LoginRequest,
    store: InMemoryCredentialStore = Depends(get_credential_store),
) -> LoginResponse:
    """Check login credentials.

    Throttled as an authentication endpoint: the caller's address, the
    claimed identifier and their combination are each checked for an active
    lockout. A 401 from this endpoint counts as a failed attempt for all three
    scopes; a 200 clears them.

    Args:
        payload: Login identifier and password.
        store: Credential store from the application state.

    Returns:
        LoginResponse with the normalized identifier.

    Raises:
        AuthenticationAppError: On invalid credentials (rendered as 401).
    """
    identifier = store.verify(payload.identifier, payload.password)
    return LoginResponse(identifier=identifier)


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=201,
    dependencies=[Depends(enforce_register_throttle)],
    responses={409: {"description": "Identifier already registered"}, 429: {"model": ThrottleErrorResponse}},
)
async def register(
    payload: RegisterRequest,
    store: InMemoryCredentialStore = Depends(get_credential_store),
) -> RegisterResponse:
    """Create an account.

    Throttled like login, with an additional per-address registration
    ceiling (``THROTTLE_REGISTER_MAX_REQUESTS`` per
    ``THROTTLE_REGISTER_WINDOW_SECONDS``). Locked-out callers are rejected.
    """
    identifier = store.register(payload.identifier, payload.password)
    return RegisterResponse(identifier=identifier)
