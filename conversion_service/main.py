"""FastAPI application wiring for the conversion service."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.concurrency import run_in_threadpool

from .api import admin, files, routes
from .api.dependencies import RateLimiter
from .api.middleware import RateLimitMiddleware, RequestLoggingMiddleware, utc_timestamp
from .config import Settings, get_settings
from .domain.converter import PdfConverter
from .domain.errors import ConversionError
from .domain.service import ConversionService, Converter
from .domain.storage import FileStore
from .logging_config import configure_logging
from .metrics import RATE_LIMIT_TRACKED_CLIENTS
from .scheduler import PeriodicTask
from .security.rate_limiter import RateLimiterStats, SlidingWindowRateLimiter
from .security.redis_rate_limiter import RedisSlidingWindowRateLimiter

logger = logging.getLogger(__name__)

FEATURES = ("single-file", "multi-file", "batch-processing", "auto-cleanup")


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if not settings.rate_limit_enabled:
        logger.info("rate limiting disabled; every request is admitted")
        return SlidingWindowRateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_ms=settings.rate_limit_window_ms,
            enabled=False,
        )

    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_max_requests,
                window_ms=settings.rate_limit_window_ms,
            )
        except Exception as exc:  # pragma: no cover - depends on a live redis
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_ms=settings.rate_limit_window_ms,
        shards=settings.rate_limit_shards,
    )


def sweep_rate_limiter(app: FastAPI, limiter: RateLimiter) -> int:
    """Prune expired entries and refresh the stats snapshot served by ``/health``."""
    removed = limiter.sweep()
    snapshot = limiter.stats()
    app.state.rate_limit_stats = snapshot
    RATE_LIMIT_TRACKED_CLIENTS.set(snapshot.tracked_keys)
    return removed


def create_app(
    settings: Settings | None = None,
    *,
    converter: Converter | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Build the application; ``converter`` and ``rate_limiter`` override the defaults."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialise shared resources (storage, limiter, maintenance) for the app lifecycle."""
        settings.check()
        store = FileStore(settings.uploads_dir, settings.outputs_dir)
        store.ensure_directories()

        active_converter = converter
        if active_converter is None:
            pdf_converter = PdfConverter.from_settings(settings)
            if await run_in_threadpool(pdf_converter.check_environment):
                logger.info("conversion engine %s validated", settings.python_module)
            else:
                logger.error(
                    "conversion engine %s is not usable; conversions will fail until it is installed",
                    settings.python_module,
                )
            active_converter = pdf_converter

        limiter = rate_limiter or build_rate_limiter(settings)
        app.state.file_store = store
        app.state.rate_limiter = limiter
        app.state.rate_limit_stats = limiter.stats()
        app.state.conversion_service = ConversionService(store, active_converter)

        tasks = [
            PeriodicTask(
                "file-cleanup",
                settings.cleanup_interval_ms / 1000,
                lambda: store.cleanup_old_files(settings.max_file_age_ms),
            )
        ]
        if limiter.enabled:
            tasks.append(
                PeriodicTask(
                    "rate-limit-sweep",
                    settings.rate_limit_sweep_interval_ms / 1000,
                    lambda: sweep_rate_limiter(app, limiter),
                )
            )
        for task in tasks:
            task.start()
        logger.info(
            "%s v%s ready (env=%s, rate limiting %s)",
            settings.app_name,
            settings.version,
            settings.environment,
            "enabled" if limiter.enabled else "disabled",
        )
        try:
            yield
        finally:
            for task in tasks:
                task.stop()
            if limiter.enabled:
                sweep_rate_limiter(app, limiter)

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.state.settings = settings
    app.state.started_at = time.monotonic()

    app.add_middleware(
        RateLimitMiddleware,
        trust_proxy=settings.trust_proxy,
        exempt_prefixes=(f"{settings.api_base_path}/admin/",),
    )
    if settings.enable_request_logging:
        app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
        max_age=600,
    )

    @app.exception_handler(ConversionError)
    async def conversion_error_handler(request: Request, exc: ConversionError) -> JSONResponse:
        logger.error("conversion failed on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": exc.title,
                "message": str(exc),
                "timestamp": utc_timestamp(),
            },
        )

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict[str, str]:
        """Return a minimal readiness indicator used by orchestration systems."""
        return {"status": "ok"}

    @app.get("/health", tags=["health"])
    def health(request: Request) -> dict[str, Any]:
        """Describe the running service, its limits, and rate limiter activity."""
        # Snapshot refreshed by each sweep.
        stats: RateLimiterStats | None = getattr(request.app.state, "rate_limit_stats", None)
        rate_limit: dict[str, Any] = {
            "enabled": settings.rate_limit_enabled,
            "max_requests": settings.rate_limit_max_requests,
            "window_seconds": settings.rate_limit_window_ms / 1000,
        }
        if stats is not None:
            rate_limit["active_clients"] = stats.active_clients
            rate_limit["total_recent_requests"] = stats.total_recent_requests
        return {
            "status": "OK",
            "message": "PDF to DOCX API is running",
            "timestamp": utc_timestamp(),
            "version": settings.version,
            "environment": settings.environment,
            "features": list(FEATURES),
            "limits": {
                "max_file_size": f"{settings.max_file_size // (1024 * 1024)}MB",
                "max_files_per_request": settings.max_files_per_request,
                "max_total_size": f"{settings.max_total_size // (1024 * 1024)}MB",
            },
            "uptime_seconds": round(time.monotonic() - request.app.state.started_at, 3),
            "rate_limit": rate_limit,
        }

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(routes.router, prefix=settings.api_base_path)
    app.include_router(files.router, prefix=settings.api_base_path)
    app.include_router(admin.router, prefix=settings.api_base_path)
    return app


app = create_app()
