import logging

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from quizzer.core.errors import RateLimitError, error_body

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client request limit backed by the redis counter on ``app.state.cache``."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/health"):
            return await call_next(request)

        settings = request.app.state.settings
        client = request.client.host if request.client else "anonymous"
        allowed, count = await request.app.state.cache.check_rate_limit(
            client, settings.RATE_LIMIT_PER_MINUTE, WINDOW_SECONDS
        )
        if not allowed:
            logger.warning("Rate limit exceeded for %s (%d requests)", client, count)
            exc = RateLimitError("Too many requests from this client, please try again later.")
            return JSONResponse(
                status_code=exc.status_code,
                content=error_body(exc.message, exc.category, exc.status_code),
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(settings.RATE_LIMIT_PER_MINUTE)
        response.headers["X-RateLimit-Remaining"] = str(max(settings.RATE_LIMIT_PER_MINUTE - count, 0))
        return response
