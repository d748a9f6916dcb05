"""
Batch driver: runs one bounded step of an import, clear or expire cycle and
persists the run state on ``ImportRun`` so the next step can resume.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from flask import current_app

from feedsync.importer.adapters.json_items import load_items
from feedsync.importer.errors import ConfigurationError
from feedsync.importer.extensions import get_importer_extensions
from feedsync.importer.mapping import DEFAULT_PROCESS_LIMIT, ProcessorConfig, load_processor_config, resolve_config_path
from feedsync.importer.metrics import record_batch_step
from feedsync.importer.registry import TargetRegistry
from feedsync.models import ImportRun, ImportRunKind, ImportRunStatus, db

from .clear import ClearController
from .processor import FeedsProcessor, ProcessMessage
from .source import FeedSource, ParserResult
from .state import RunState
from .storage import SQLAlchemyEntityStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepOutcome:
    """Result of a single batch step."""

    run_id: int
    kind: ImportRunKind
    progress: float
    complete: bool
    state: RunState
    messages: tuple[ProcessMessage, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "kind": self.kind.value,
            "progress": self.progress,
            "complete": self.complete,
            "counts": self.state.counts(),
            "messages": [asdict(message) for message in self.messages],
        }


def load_config_for_app(path: str | Path) -> ProcessorConfig:
    default_limit = int(current_app.config.get("IMPORTER_PROCESS_LIMIT", DEFAULT_PROCESS_LIMIT))
    return load_processor_config(resolve_config_path(path), default_process_limit=default_limit)


def build_processor(config: ProcessorConfig, *, context: dict[str, Any] | None = None) -> FeedsProcessor:
    """Create a processor with a fresh registry for one run."""

    extensions = get_importer_extensions()
    return FeedsProcessor(
        config,
        SQLAlchemyEntityStorage(config.entity_kind),
        TargetRegistry(extensions.contributors),
        extensions,
        context=context,
    )


def start_run(
    config_path: str | Path,
    *,
    kind: ImportRunKind = ImportRunKind.IMPORT,
    origin_id: int = 0,
    items_path: str | Path | None = None,
    max_age: int | None = None,
) -> ImportRun:
    """
    Validate the processor configuration and create a run with fresh state.
    """

    config = load_config_for_app(config_path)
    if kind is ImportRunKind.IMPORT and items_path is None:
        raise ConfigurationError("An items file is required to start an import run.")

    params: dict[str, Any] = {"config_path": str(config.path)}
    if items_path is not None:
        params["items_path"] = str(Path(items_path).resolve())
    if max_age is not None:
        params["max_age"] = int(max_age)

    run = ImportRun(
        processor_id=config.id,
        origin_id=origin_id,
        kind=kind,
        status=ImportRunStatus.PENDING,
        state_json=RunState().as_dict(),
        ingest_params_json=params,
        notes=f"config checksum {config.checksum}",
    )
    db.session.add(run)
    db.session.commit()
    current_app.logger.info(
        "Importer run created",
        extra={
            "importer_run_id": run.id,
            "importer_processor": config.id,
            "importer_kind": kind.value,
            "importer_origin_id": origin_id,
        },
    )
    return run


def _remaining_items(path: str, pointer: int) -> ParserResult:
    result = load_items(path)
    if not pointer:
        return result
    return ParserResult(result.items[pointer:], link=result.link, title=result.title)


def import_step(run: ImportRun, config: ProcessorConfig, state: RunState) -> list[ProcessMessage]:
    params = run.ingest_params_json or {}
    source = FeedSource(config.id, run.origin_id, config, context={"run_id": run.id})
    result = _remaining_items(params["items_path"], state.pointer)
    processor = build_processor(config, context={"run_id": run.id})
    return processor.process(source, result, state)


def clear_step(run: ImportRun, config: ProcessorConfig, state: RunState) -> list[ProcessMessage]:
    source = FeedSource(config.id, run.origin_id, config, context={"run_id": run.id})
    controller = ClearController(config, SQLAlchemyEntityStorage(config.entity_kind))
    controller.clear(source, state)
    return controller.report(state) if state.is_complete else []


def expire_step(run: ImportRun, config: ProcessorConfig, state: RunState) -> list[ProcessMessage]:
    params = run.ingest_params_json or {}
    source = FeedSource(config.id, run.origin_id, config, context={"run_id": run.id})
    controller = ClearController(config, SQLAlchemyEntityStorage(config.entity_kind))
    controller.expire(source, state, params.get("max_age"))
    return controller.report(state, operation="expire") if state.is_complete else []


_STEPS = {
    ImportRunKind.IMPORT: import_step,
    ImportRunKind.CLEAR: clear_step,
    ImportRunKind.EXPIRE: expire_step,
}


def run_step(run_id: int) -> StepOutcome:
    """
    Execute the next step of a run and persist its state.

    Finished runs are returned unchanged. Errors that halt a step mark the run
    failed and propagate to the caller.
    """

    run = db.session.get(ImportRun, run_id)
    if run is None:
        raise ValueError(f"Import run {run_id} not found.")

    if run.status not in (ImportRunStatus.PENDING, ImportRunStatus.RUNNING):
        state = RunState.from_dict(run.counts_json)
        state.update_progress(0, 0)
        messages = tuple(ProcessMessage(**entry) for entry in (run.messages_json or ()))
        return StepOutcome(run.id, run.kind, state.progress, True, state, messages)

    kind = run.kind
    started = time.perf_counter()
    run.mark_running()
    db.session.commit()

    try:
        config = load_config_for_app((run.ingest_params_json or {})["config_path"])
        state = RunState.from_dict(run.state_json)
        messages = _STEPS[kind](run, config, state)
    except Exception as exc:
        db.session.rollback()
        failed_run = db.session.get(ImportRun, run_id)
        failed_run.mark_failed(str(exc))
        db.session.commit()
        record_batch_step(operation=kind.value, status="failed", duration_seconds=time.perf_counter() - started)
        current_app.logger.exception(
            "Importer step failed",
            extra={"importer_run_id": run_id, "importer_kind": kind.value, "importer_error": str(exc)},
        )
        raise

    run = db.session.get(ImportRun, run_id)
    if state.is_complete:
        _finish_run(run, state, messages)
    else:
        run.state_json = state.as_dict()
    db.session.commit()

    record_batch_step(
        operation=kind.value,
        status="complete" if state.is_complete else "continued",
        duration_seconds=time.perf_counter() - started,
    )
    current_app.logger.info(
        "Importer step finished",
        extra={
            "importer_run_id": run_id,
            "importer_kind": kind.value,
            "importer_progress": state.progress,
            "importer_counts": state.counts(),
        },
    )
    return StepOutcome(run_id, kind, state.progress, state.is_complete, state, tuple(messages))


def _finish_run(run: ImportRun, state: RunState, messages: list[ProcessMessage]) -> None:
    run.status = ImportRunStatus.PARTIALLY_FAILED if state.failed else ImportRunStatus.SUCCEEDED
    run.finished_at = datetime.now(timezone.utc)
    run.counts_json = state.counts()
    run.messages_json = [asdict(message) for message in messages]
    run.state_json = None


def drive_run(run_id: int, *, max_steps: int | None = None) -> StepOutcome:
    """Run steps in-process until the run completes or ``max_steps`` is reached."""

    steps = 0
    while True:
        outcome = run_step(run_id)
        steps += 1
        if outcome.complete or (max_steps is not None and steps >= max_steps):
            return outcome
