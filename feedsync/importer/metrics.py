"""Prometheus metrics helpers for the importer."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_item_outcomes = Counter(
    "importer_feed_items_total",
    "Feed items handled by the processor, by outcome.",
    ["processor", "outcome"],
)
_deleted_entities = Counter(
    "importer_feed_entities_deleted_total",
    "Entities removed by clear and expire sweeps.",
    ["processor", "operation"],
)
_batch_steps = Counter(
    "importer_batch_steps_total",
    "Batch steps executed, by operation and result.",
    ["operation", "status"],
)
_batch_step_duration = Histogram(
    "importer_batch_step_duration_seconds",
    "Duration of a single importer batch step in seconds.",
    ["operation"],
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120),
)


def record_item_outcome(processor_id: str, outcome: str) -> None:
    """Increment the per-item outcome counter."""

    _item_outcomes.labels(processor=processor_id, outcome=outcome).inc()


def record_deleted(processor_id: str, count: int, *, operation: Literal["clear", "expire"]) -> None:
    if count <= 0:
        return
    _deleted_entities.labels(processor=processor_id, operation=operation).inc(count)


def record_batch_step(
    *,
    operation: str,
    status: Literal["complete", "continued", "failed"],
    duration_seconds: float,
) -> None:
    """Capture metrics for one batch step."""

    _batch_steps.labels(operation=operation, status=status).inc()
    _batch_step_duration.labels(operation=operation).observe(duration_seconds)
