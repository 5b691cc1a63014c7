import hashlib
import logging
import time

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from manifest.config import settings

logger = logging.getLogger(__name__)


def _client_key(request: Request) -> str:
    """Rate limit per token when the caller presents one, else per IP."""
    token = request.headers.get("authorization") or request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return "rate_limit:tok:" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]
    client_ip = request.client.host if request.client else "unknown"
    return f"rate_limit:ip:{client_ip}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-backed sliding window rate limiter."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/health":
            return await call_next(request)

        redis_client = getattr(request.app.state, "redis", None)
        if redis_client is None:
            return await call_next(request)

        key = _client_key(request)
        try:
            now = time.time()
            window = 60

            pipe = redis_client.pipeline()
            pipe.zremrangebyscore(key, 0, now - window)
            pipe.zadd(key, {str(now): now})
            pipe.zcard(key)
            pipe.expire(key, window)
            results = await pipe.execute()
            request_count = results[2]
        except Exception:
            # Redis trouble must not take the API down
            logger.warning("Rate limiter unavailable, letting request through", exc_info=True)
            return await call_next(request)

        if request_count > settings.RATE_LIMIT_PER_MINUTE:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Try again later."},
            )
        return await call_next(request)
