"""Administrative endpoints for inspecting and resetting the rate limiter."""

from __future__ import annotations

import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel

from ..config import Settings
from .dependencies import RateLimiter, get_app_settings, get_rate_limiter


def require_admin(
    settings: Settings = Depends(get_app_settings),
    token: str | None = Header(default=None, alias="X-Admin-Token"),
) -> None:
    """Hide the admin surface unless a token is configured, then demand it."""
    if not settings.admin_token:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    if token is None or not secrets.compare_digest(token, settings.admin_token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid admin token")


router = APIRouter(prefix="/admin/rate-limit", tags=["admin"], dependencies=[Depends(require_admin)])


class RateLimitStatsResponse(BaseModel):
    enabled: bool
    active_clients: int
    total_recent_requests: int
    tracked_keys: int
    window_ms: int
    max_requests: int


class ResetClientResponse(BaseModel):
    client: str
    reset: bool


class ResetAllResponse(BaseModel):
    cleared: int


@router.get("/stats", response_model=RateLimitStatsResponse)
def rate_limit_stats(limiter: RateLimiter = Depends(get_rate_limiter)) -> RateLimitStatsResponse:
    stats = limiter.stats()
    return RateLimitStatsResponse(
        enabled=stats.enabled,
        active_clients=stats.active_clients,
        total_recent_requests=stats.total_recent_requests,
        tracked_keys=stats.tracked_keys,
        window_ms=stats.window_ms,
        max_requests=stats.max_requests,
    )


@router.delete("/clients/{client_key}", response_model=ResetClientResponse)
def reset_client(
    client_key: str, limiter: RateLimiter = Depends(get_rate_limiter)
) -> ResetClientResponse:
    """Forget the recorded requests for one client key."""
    existed = limiter.reset_client(client_key)
    if not existed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="client not tracked")
    return ResetClientResponse(client=client_key, reset=True)


@router.delete("/clients", response_model=ResetAllResponse)
def reset_all(limiter: RateLimiter = Depends(get_rate_limiter)) -> ResetAllResponse:
    return ResetAllResponse(cleared=limiter.reset_all())
