"""
Prometheus Metrics

Client-side collectors for the state synchronization core:
- Entity cache hit/miss/invalidation counts per key family
- Remote procedure latency and failures per method
- Mutation outcomes per mutation kind
- Current session status

Usage:
    from jobboard.metrics import CACHE_HITS, export_metrics

    CACHE_HITS.labels(family="jobs.published").inc()
    print(export_metrics().decode())
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    REGISTRY,
    generate_latest,
)

# ==================== Entity Cache ====================

CACHE_HITS = Counter(
    "jobboard_cache_hits_total",
    "Entity cache reads served from a fresh entry",
    ["family"]
)

CACHE_MISSES = Counter(
    "jobboard_cache_misses_total",
    "Entity cache reads that required a remote fetch",
    ["family"]
)

CACHE_INVALIDATIONS = Counter(
    "jobboard_cache_invalidations_total",
    "Entries marked stale by invalidation",
    ["family"]
)

# ==================== Remote Calls ====================

# Sub-second buckets, plus a long tail for stalled networks
REMOTE_CALL_LATENCY = Histogram(
    "jobboard_remote_call_seconds",
    "Remote procedure call latency in seconds",
    ["method"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

REMOTE_CALL_FAILURES = Counter(
    "jobboard_remote_call_failures_total",
    "Remote procedure calls that rejected",
    ["method"]
)

# ==================== Mutations & Session ====================

MUTATIONS = Counter(
    "jobboard_mutations_total",
    "Mutations by kind and outcome",
    ["kind", "outcome"]  # success, remote_error, rejected
)

SESSION_STATUS = Gauge(
    "jobboard_session_status",
    "1 for the current session status, 0 otherwise",
    ["status"]
)


def export_metrics() -> bytes:
    """Render every registered collector in Prometheus text format."""
    return generate_latest(REGISTRY)
