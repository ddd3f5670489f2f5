"""Request-scoped accessors for resources stored on the application state."""

from __future__ import annotations

from fastapi import Request

from ..config import Settings
from ..domain.service import ConversionService
from ..domain.storage import FileStore
from ..security.rate_limiter import SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter

RateLimiter = SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter


def get_app_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_service(request: Request) -> ConversionService:
    """Resolve the `ConversionService` stored on the FastAPI application state."""
    service: ConversionService = request.app.state.conversion_service
    return service


def get_store(request: Request) -> FileStore:
    store: FileStore = request.app.state.file_store
    return store


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter: RateLimiter = request.app.state.rate_limiter
    return limiter
