"""HTTP middleware: per-client rate limiting and request logging."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ..metrics import RATE_LIMIT_DECISIONS
from ..security.rate_limiter import Decision

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/health", "/healthz", "/metrics"})


def utc_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    moment = moment or datetime.now(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def client_key(request: Request, trust_proxy: bool = False) -> str:
    """Identify the caller by network address, honouring ``X-Forwarded-For`` behind a proxy."""
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_headers(decision: Decision) -> dict[str, str]:
    if decision.limit is None:
        return {
            "X-RateLimit-Disabled": "true",
            "X-RateLimit-Limit": "unlimited",
            "X-RateLimit-Remaining": "unlimited",
        }
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }
    if decision.reset_at is not None:
        headers["X-RateLimit-Reset"] = utc_timestamp(decision.reset_at)
    if decision.retry_after_seconds is not None:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Consult ``app.state.rate_limiter`` before every non-exempt request."""

    def __init__(
        self,
        app,
        *,
        trust_proxy: bool = False,
        exempt_paths=EXEMPT_PATHS,
        exempt_prefixes: tuple[str, ...] = (),
    ) -> None:
        super().__init__(app)
        self._trust_proxy = trust_proxy
        self._exempt_paths = frozenset(exempt_paths)
        self._exempt_prefixes = exempt_prefixes

    def _exempt(self, path: str) -> bool:
        return path in self._exempt_paths or path.startswith(self._exempt_prefixes)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        limiter = getattr(request.app.state, "rate_limiter", None)
        if limiter is None or self._exempt(request.url.path):
            return await call_next(request)

        key = client_key(request, self._trust_proxy)
        decision = await run_in_threadpool(limiter.admit, key)
        headers = rate_limit_headers(decision)

        if not decision.allowed:
            RATE_LIMIT_DECISIONS.labels(outcome="rejected").inc()
            logger.warning(
                "rate limit exceeded for %s on %s %s", key, request.method, request.url.path
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "success": False,
                    "error": "Rate Limit Exceeded",
                    "message": "Too many requests from this IP. Please try again later.",
                    "retry_after": decision.retry_after_seconds,
                    "limit": decision.limit,
                    "window_seconds": limiter.window_ms / 1000,
                    "timestamp": utc_timestamp(),
                },
                headers=headers,
            )

        RATE_LIMIT_DECISIONS.labels(
            outcome="allowed" if decision.limit is not None else "bypassed"
        ).inc()
        request.state.rate_limit = decision
        response = await call_next(request)
        response.headers.update(headers)
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its status code and duration."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            "%s %s from %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            request.client.host if request.client else "unknown",
            response.status_code,
            duration_ms,
        )
        return response
