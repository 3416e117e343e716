"""Prometheus metrics helpers for the importer."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

_check_outcomes = Counter(
    "importer_source_checks_total",
    "Import source check cycles by resulting state.",
    ["state"],
)
_check_duration = Histogram(
    "importer_source_check_duration_seconds",
    "Duration of import source check cycles in seconds.",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)
_rows_rejected = Counter(
    "importer_rows_rejected_total",
    "Rows removed by row modifiers before comparison.",
)
_runs_committed = Counter(
    "importer_runs_committed_total",
    "Import runs stored after changes were detected.",
)


def record_check_outcome(state: str, duration_seconds: float) -> None:
    """Count a finished check cycle and observe its duration."""

    _check_outcomes.labels(state=state).inc()
    _check_duration.observe(duration_seconds)


def record_rows_rejected(count: int) -> None:
    if count > 0:
        _rows_rejected.inc(count)


def record_run_committed() -> None:
    _runs_committed.inc()
