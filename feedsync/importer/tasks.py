"""
Importer Celery tasks.

Every task invocation runs a single batch step and re-enqueues itself until
the run reports completion, so long imports never hold a worker for the
whole cycle.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from celery import shared_task

from feedsync.importer.pipeline.batch import StepOutcome, run_step
from feedsync.models import ImportRunKind


@shared_task(name="importer.healthcheck", bind=True)
def importer_healthcheck(self) -> dict[str, Any]:
    """
    Simple heartbeat task used by worker health checks.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "worker_hostname": self.request.hostname,
    }


def _step_and_requeue(task, run_id: int) -> dict[str, Any]:
    outcome: StepOutcome = run_step(run_id)
    payload = outcome.as_dict()
    if not outcome.complete:
        next_task = task.apply_async(kwargs={"run_id": run_id})
        payload["next_task_id"] = next_task.id
    return payload


@shared_task(name="importer.feeds.import_step", bind=True)
def feeds_import_step(self, *, run_id: int) -> dict[str, Any]:
    """Process the next page of items for an import run."""

    return _step_and_requeue(self, run_id)


@shared_task(name="importer.feeds.clear_step", bind=True)
def feeds_clear_step(self, *, run_id: int) -> dict[str, Any]:
    """Delete the next page of imported entities for a clear run."""

    return _step_and_requeue(self, run_id)


@shared_task(name="importer.feeds.expire_step", bind=True)
def feeds_expire_step(self, *, run_id: int) -> dict[str, Any]:
    """Delete the next page of expired entities for an expire run."""

    return _step_and_requeue(self, run_id)


STEP_TASKS = {
    ImportRunKind.IMPORT: feeds_import_step,
    ImportRunKind.CLEAR: feeds_clear_step,
    ImportRunKind.EXPIRE: feeds_expire_step,
}


def enqueue_run(run) -> str:
    """Queue the first step of ``run`` and return the Celery task id."""

    task = STEP_TASKS[run.kind]
    async_result = task.apply_async(kwargs={"run_id": run.id})
    return async_result.id
