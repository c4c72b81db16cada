"""Prometheus metrics for the sync engine.

The module bundles all collectors in one place so importing side-effects
(metric registration) happen exactly once per process.  Services simply
``from cloudsync.metrics import …`` and increment.
"""

from __future__ import annotations

from prometheus_client import Counter
from prometheus_client import Histogram

sync_push_ops_total = Counter(
    "sync_push_ops_total",
    "Push operations processed, by outcome",
    labelnames=("outcome",),
)

sync_pull_requests_total = Counter(
    "sync_pull_requests_total",
    "Pull requests served",
)

sync_gc_purged_total = Counter(
    "sync_gc_purged_total",
    "Rows removed by retention GC",
    labelnames=("collection",),
)

sync_gc_continuations_total = Counter(
    "sync_gc_continuations_total",
    "GC continuations scheduled because a workspace had more work",
)

sync_gc_runs_total = Counter(
    "sync_gc_runs_total",
    "Completed workspace GC runs, by whether work remained",
    labelnames=("result",),
)

sync_device_cursor_reports_total = Counter(
    "sync_device_cursor_reports_total",
    "Device cursor heartbeats accepted",
)

# ------------------------------------------------------------------
# Histograms (latency) ---------------------------------------------
# ------------------------------------------------------------------

sync_push_latency_seconds = Histogram(
    "sync_push_latency_seconds",
    "End-to-end processing time of one push batch (seconds)",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)


__all__ = [
    "sync_push_ops_total",
    "sync_pull_requests_total",
    "sync_gc_purged_total",
    "sync_gc_continuations_total",
    "sync_gc_runs_total",
    "sync_device_cursor_reports_total",
    "sync_push_latency_seconds",
]
