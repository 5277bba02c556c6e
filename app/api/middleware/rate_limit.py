"""
OTP Rate Limiting

Per-phone throttling for the OTP endpoints with Redis backend, proper
headers, and logging. The check runs inside the route (the phone number
lives in the request body); the middleware copies the results into
response headers.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.infra.notifications import mask_phone
from app.infra.redis import RateLimiterStore, get_rate_limiter_store

logger = logging.getLogger(__name__)

# Header names
HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"


def add_rate_limit_headers(
    response: Response,
    limit: int,
    remaining: int,
    reset_seconds: int,
) -> None:
    """Add rate limit headers to response."""
    response.headers[HEADER_LIMIT] = str(limit)
    response.headers[HEADER_REMAINING] = str(remaining)
    response.headers[HEADER_RESET] = str(reset_seconds)


async def enforce_otp_rate_limit(
    request: Request,
    action: str,
    phone: str,
    store: Optional[RateLimiterStore] = None,
) -> None:
    """
    Count an OTP request for a phone number and reject it over the limit.

    Args:
        request: Current request (results are stored on request.state)
        action: "otp-send" or "otp-verify"; each has its own counter
        phone: Normalized phone number
        store: Limiter store (defaults to the shared Redis-backed one)

    Raises:
        HTTPException 429: Limit exceeded for this phone and action
    """
    if store is None:
        store = await get_rate_limiter_store()

    identifier = f"{action}:{phone}"
    allowed, remaining, reset_seconds = await store.is_allowed(identifier)

    # Store in request state for middleware to add headers
    request.state.rate_limit_limit = store.max_requests
    request.state.rate_limit_remaining = remaining
    request.state.rate_limit_reset = reset_seconds

    if not allowed:
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(
            f"OTP rate limit exceeded | Action: {action} | Phone: {mask_phone(phone)} | "
            f"Limit: {store.max_requests} | IP: {client_ip}"
        )

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many OTP requests. Please try again later.",
            headers={
                HEADER_LIMIT: str(store.max_requests),
                HEADER_REMAINING: "0",
                HEADER_RESET: str(reset_seconds),
                HEADER_RETRY_AFTER: str(reset_seconds),
            },
        )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds rate limit headers to responses.

    The actual check is done by enforce_otp_rate_limit().
    This middleware just ensures headers are added to responses.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        response = await call_next(request)

        limit = getattr(request.state, "rate_limit_limit", None)
        remaining = getattr(request.state, "rate_limit_remaining", None)
        reset_seconds = getattr(request.state, "rate_limit_reset", None)

        if limit is not None and limit > 0:
            add_rate_limit_headers(response, limit, remaining, reset_seconds)

        return response
