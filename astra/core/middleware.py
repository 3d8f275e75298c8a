"""Middleware for rate limiting, user resolution, and request logging."""

import logging
import time
import uuid
from typing import Optional, Callable
from contextvars import ContextVar

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..config import settings
from .exceptions import InvalidTokenError
from .security import decode_access_token

logger = logging.getLogger(__name__)

# Context variables for the request lifecycle
user_context: ContextVar[Optional[str]] = ContextVar("user_context", default=None)
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id_context", default=None)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window rate limiting per user per API.

    Implements distributed rate limiting using Redis with the following limits:
    - Report runs (webhook): 10 requests per minute
    - Report generation (Gemini): 10 requests per minute
    - Default: 100 requests per minute
    """

    LIMITS = {
        "report_run": {"requests": 10, "window": 60},
        "report_generate": {"requests": 10, "window": 60},
        "default": {"requests": 100, "window": 60},
    }

    EXEMPT_PATHS = ("/health", "/health/ready", "/", "/metrics")

    def __init__(self, app: ASGIApp, redis_client: Redis):
        super().__init__(app)
        self.redis = redis_client

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Check rate limits before processing request."""
        if request.url.path in self.EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        # Extract user ID from context (set by UserContextMiddleware)
        user_id = user_context.get()
        if not user_id:
            # Anonymous requests are rejected by the auth dependency
            return await call_next(request)

        api = self._get_api_from_path(request.url.path)
        allowed, retry_after = await self.check_rate_limit(user_id, api)

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for user={user_id}, api={api}, "
                f"retry_after={retry_after}s"
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "rate_limit_exceeded",
                    "message": f"Too many requests. Please try again in {retry_after} seconds.",
                    "retry_after": retry_after
                },
                headers={"Retry-After": str(retry_after)}
            )

        return await call_next(request)

    def _get_api_from_path(self, path: str) -> str:
        """Determine API type from request path."""
        if path.endswith("/run") or path.endswith("/check"):
            return "report_run"
        elif path.startswith("/functions/"):
            return "report_generate"
        return "default"

    async def check_rate_limit(
        self,
        user_id: str,
        api: str
    ) -> tuple[bool, int]:
        """Check if request is within rate limit.

        Uses Redis INCR with expiration for efficient distributed rate limiting.

        Args:
            user_id: User identifier
            api: API type (report_run, report_generate, default)

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        key = f"ratelimit:{user_id}:{api}"
        limit = self.LIMITS.get(api, self.LIMITS["default"])

        try:
            current = await self.redis.incr(key)

            # Set expiration on first request
            if current == 1:
                await self.redis.expire(key, limit["window"])

            if current > limit["requests"]:
                ttl = await self.redis.ttl(key)
                # TTL returns -1 if key has no expiry, -2 if key doesn't exist
                return False, ttl if ttl > 0 else limit["window"]

            return True, 0
        except Exception as e:
            # On Redis error, allow request but log error
            logger.error(f"Rate limit check failed: {e}")
            return True, 0


class UserContextMiddleware(BaseHTTPMiddleware):
    """Extract the user from the bearer token and set it for the request lifecycle.

    Invalid tokens are ignored here; endpoints that need a user reject them.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Extract and set user context."""
        user_id = None
        authorization = request.headers.get("Authorization", "")

        if authorization.lower().startswith("bearer "):
            try:
                user_id = decode_access_token(
                    authorization.split(" ", 1)[1].strip(),
                    settings.secret_key,
                    settings.algorithm
                )
            except InvalidTokenError:
                logger.debug("Ignoring invalid bearer token in user context")

        token = user_context.set(user_id)
        try:
            return await call_next(request)
        finally:
            user_context.reset(token)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log request and response details with correlation ID.

    Logs:
    - Request method, path, user_id, correlation_id
    - Response status code and duration
    - Errors with stack traces
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Log request and response."""
        correlation_id = str(uuid.uuid4())
        request_id_context.set(correlation_id)

        start_time = time.time()
        user_id = user_context.get()

        logger.info(
            f"Request started: method={request.method} path={request.url.path} "
            f"user={user_id or 'anonymous'} correlation_id={correlation_id}"
        )

        try:
            response = await call_next(request)

            duration_ms = (time.time() - start_time) * 1000

            logger.info(
                f"Request completed: method={request.method} path={request.url.path} "
                f"status={response.status_code} duration_ms={duration_ms:.2f} "
                f"user={user_id or 'anonymous'} correlation_id={correlation_id}"
            )

            response.headers["X-Correlation-ID"] = correlation_id
            return response

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000

            logger.error(
                f"Request failed: method={request.method} path={request.url.path} "
                f"duration_ms={duration_ms:.2f} user={user_id or 'anonymous'} "
                f"correlation_id={correlation_id} error={str(e)}",
                exc_info=True
            )

            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "internal_server_error",
                    "correlation_id": correlation_id
                },
                headers={"X-Correlation-ID": correlation_id}
            )
        finally:
            request_id_context.set(None)
