"""Prometheus metrics for delta-sync runs.

Provides:
- sync_runs_total / sync_records_total / sync_run_duration_seconds collectors
- track_sync_run(): Async context manager recording run status and duration
- record_outcome(): Increment the per-record outcome counter
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from prometheus_client import Counter, Histogram

# ── Sync Metrics ─────────────────────────────────────────────────────────────

sync_runs_total = Counter(
    "outreach_sync_runs_total",
    "Total delta-sync runs",
    ["platform", "status"],
)

sync_records_total = Counter(
    "outreach_sync_records_total",
    "Activity records examined by delta-sync, by outcome",
    ["platform", "outcome"],
)

sync_run_duration_seconds = Histogram(
    "outreach_sync_run_duration_seconds",
    "Delta-sync run duration in seconds",
    ["platform"],
    buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0),
)


def record_outcome(platform: str, outcome: str, amount: int = 1) -> None:
    """Increment the record counter for one outcome (inserted, duplicate, failed, ...)."""
    if amount:
        sync_records_total.labels(platform=platform, outcome=outcome).inc(amount)


@asynccontextmanager
async def track_sync_run(platform: str) -> AsyncGenerator[dict[str, Any], None]:
    """Context manager that tracks run metrics.

    Usage:
        async with track_sync_run("smartlead") as tracker:
            report = await do_sync()
            tracker["status"] = "cancelled" if report.cancelled else "success"

    Records the run duration and a run count labelled with the final status.
    An exception escaping the block is recorded as "failed" and re-raised.
    """
    tracker: dict[str, Any] = {"status": "success"}
    start_time = time.perf_counter()

    try:
        yield tracker
    except Exception:
        tracker["status"] = "failed"
        raise
    finally:
        sync_run_duration_seconds.labels(platform=platform).observe(time.perf_counter() - start_time)
        sync_runs_total.labels(platform=platform, status=tracker["status"]).inc()
