"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a request ID so throttle rejections and
lockout events can be correlated with the request that caused them. The
completion log line records whether the request was throttled.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from authguard.core.config import settings
from authguard.core.identity import hash_key
from authguard.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


def _completion_fields(request: Request, response: Response, duration_ms: float) -> dict:
    fields = {
        "method": request.method,
        "path": request.url.path,
        "status_code": response.status_code,
        "duration_ms": round(duration_ms, 2),
        "throttled": response.status_code == 429,
    }
    if response.status_code == 429:
        fields["retry_after_s"] = response.headers.get("Retry-After")

    identity = getattr(request.state, "throttle_identity", None)
    if identity is not None:
        fields["key_hash"] = hash_key(identity.address_key)
    return fields


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a request ID and duration header to every response.

    Uses the incoming request ID header (``LOG_REQUEST_ID_HEADER``, default
    ``X-Request-ID``) when present, otherwise generates a UUID. The ID stays
    in contextvars until the completion line is logged.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with ``X-Request-ID`` and
            ``X-Request-Duration-ms`` headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info("http.request_completed", extra=_completion_fields(request, response, duration_ms))
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
