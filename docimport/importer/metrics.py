"""Prometheus metrics helpers for the importer."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_rows_counter = Counter(
    "importer_csv_rows_total",
    "CSV lines processed by terminal status.",
    ["status"],
)
_batch_commit_counter = Counter(
    "importer_csv_batch_commits_total",
    "Transaction windows closed by the CSV importer, by outcome.",
    ["outcome"],
)
_run_duration = Histogram(
    "importer_csv_run_duration_seconds",
    "Duration of CSV import runs in seconds.",
    ["status"],
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300, 900),
)


def record_row(status: str) -> None:
    """Increment the per-line outcome counter."""

    _rows_counter.labels(status=status).inc()


def record_batch_boundary(outcome: Literal["commit", "rollback"]) -> None:
    _batch_commit_counter.labels(outcome=outcome).inc()


def record_run_duration(*, status: str, duration_seconds: float) -> None:
    """Capture the wall-clock duration of a finished run."""

    _run_duration.labels(status=status).observe(duration_seconds)
