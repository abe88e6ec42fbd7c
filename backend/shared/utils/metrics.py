"""
Prometheus metrics for the fixture sync engine.
Wraps prometheus_client with async-safe latency helpers.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
SOURCE_REQUESTS = Counter(
    "fs_source_requests_total",
    "Total HTTP requests issued to fixture sources",
    ["source", "status"],
)
SOURCE_FETCHES = Counter(
    "fs_source_fetches_total",
    "Adapter fetch outcomes per cycle",
    ["source", "outcome"],
)
RECORDS_REJECTED = Counter(
    "fs_records_rejected_total",
    "Raw records rejected before reconciliation",
    ["reason"],
)
UNMAPPED_TEAM_NAMES = Counter(
    "fs_unmapped_team_names_total",
    "Team names that did not resolve to a canonical club",
)
FIXTURES_UPSERTED = Counter(
    "fs_fixtures_upserted_total",
    "Canonical fixtures written to the store",
)
MATCHWEEK_CORRECTIONS = Counter(
    "fs_matchweek_corrections_total",
    "Unfinished fixtures moved past a completed round",
)

# ── Histograms ──────────────────────────────────────────────────────────
SOURCE_LATENCY = Histogram(
    "fs_source_latency_seconds",
    "Source request latency in seconds",
    ["source"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)
CYCLE_DURATION = Histogram(
    "fs_cycle_duration_seconds",
    "Wall-clock duration of one ingest cycle",
    ["kind"],
    buckets=(1, 2.5, 5, 10, 30, 60, 120, 300),
)

# ── Gauges ──────────────────────────────────────────────────────────────
LAST_CYCLE_TIMESTAMP = Gauge(
    "fs_last_cycle_timestamp",
    "Unix time of the last successful cycle",
    ["kind"],
)
LAST_CYCLE_FIXTURES = Gauge(
    "fs_last_cycle_fixtures",
    "Canonical fixtures produced by the last cycle",
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        histogram.labels(**labels).observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
