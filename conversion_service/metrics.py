"""Prometheus instruments shared across the service."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

RATE_LIMIT_DECISIONS = Counter(
    "rate_limit_decisions_total",
    "Admission decisions taken by the rate limiter.",
    ["outcome"],
)

RATE_LIMIT_TRACKED_CLIENTS = Gauge(
    "rate_limit_tracked_clients",
    "Client keys held by the rate limiter after the last sweep.",
)

CONVERSIONS = Counter(
    "conversions_total",
    "PDF to DOCX conversions by result.",
    ["status"],
)
