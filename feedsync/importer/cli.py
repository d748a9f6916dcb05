"""
Operator commands for feed processors, mounted as ``flask importer``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask.cli import ScriptInfo

from feedsync.importer.adapters.json_items import JSONItemsError
from feedsync.importer.celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from feedsync.importer.errors import ImporterError
from feedsync.importer.pipeline.batch import StepOutcome, build_processor, drive_run, load_config_for_app, start_run
from feedsync.models import ImportRun, ImportRunKind, db
from feedsync.utils.importer import get_processor_config_dir, is_importer_enabled

STEP_TASK_NAMES = {
    ImportRunKind.IMPORT: "importer.feeds.import_step",
    ImportRunKind.CLEAR: "importer.feeds.clear_step",
    ImportRunKind.EXPIRE: "importer.feeds.expire_step",
}


@click.group(name="importer", invoke_without_command=True)
@click.pass_context
def importer_cli(ctx):
    """
    Feed processor management commands.

    Lists the processor configurations found in IMPORTER_CONFIG_DIR when
    invoked without a subcommand.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException(
            "Importer is disabled via IMPORTER_ENABLED=false. Enable it to run importer CLI commands."
        )
    if ctx.invoked_subcommand is None:
        config_dir = get_processor_config_dir(app)
        files = sorted(config_dir.glob("*.y*ml")) if config_dir and config_dir.is_dir() else []
        if not files:
            click.echo("No processor configurations found.")
        else:
            click.echo("Processor configurations:")
            for path in files:
                click.echo(f"  - {path.stem}")


def get_disabled_importer_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the importer is disabled.
    """

    @click.group(name="importer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Importer commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _resolve_celery(app) -> Optional[Celery]:
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Importer Celery app is unavailable. Ensure IMPORTER_ENABLED=true and the "
            "importer package initialises before running worker commands."
        )
    return celery_app


def _format_outcome(run: ImportRun, outcome: StepOutcome) -> str:
    counts = outcome.state.counts()
    lines = [
        f"Run {run.id} ({run.kind.value}) for processor {run.processor_id} finished with status {run.status.value}.",
    ]
    if run.kind is ImportRunKind.IMPORT:
        lines.append(
            "  created={created} updated={updated} failed={failed} unchanged={unchanged} skipped={skipped}".format(
                **counts
            )
        )
    else:
        lines.append(f"  deleted={counts['deleted']}")
    for message in outcome.messages:
        lines.append(f"  [{message.status}] {message.text}")
    return "\n".join(lines)


def _launch(app, run: ImportRun, *, inline: bool, summary_json: bool) -> None:
    run_id = run.id
    if not inline:
        celery_app = _resolve_celery(app)
        try:
            async_result = celery_app.send_task(STEP_TASK_NAMES[run.kind], kwargs={"run_id": run_id})
        except Exception as exc:  # pragma: no cover - broker failures
            recovery_run = db.session.get(ImportRun, run_id)
            if recovery_run is not None:
                recovery_run.mark_failed(str(exc))
                db.session.commit()
            raise click.ClickException(f"Failed to enqueue importer run {run_id}: {exc}") from exc

        payload = {
            "run_id": run_id,
            "task_id": async_result.id,
            "status": "queued",
            "kind": run.kind.value,
            "processor": run.processor_id,
        }
        app.logger.info(
            "Importer run queued via CLI",
            extra={"importer_run_id": run_id, "importer_task_id": async_result.id, "importer_kind": run.kind.value},
        )
        click.echo(json.dumps(payload))
        return

    try:
        outcome = drive_run(run_id)
    except (ImporterError, JSONItemsError) as exc:
        raise click.ClickException(f"Import run {run_id} failed: {exc}") from exc

    run = db.session.get(ImportRun, run_id)
    click.echo(_format_outcome(run, outcome))
    if summary_json:
        click.echo(json.dumps(outcome.as_dict(), indent=2, sort_keys=True))


def _create_run(config_path: str, **kwargs) -> ImportRun:
    try:
        return start_run(config_path, **kwargs)
    except ImporterError as exc:
        raise click.ClickException(str(exc)) from exc


_inline_option = click.option(
    "--inline/--no-inline",
    default=False,
    help="Drive every batch step in the CLI process instead of queueing via Celery.",
)
_summary_option = click.option(
    "--summary-json",
    is_flag=True,
    help="Emit a machine-readable summary payload after completion (inline runs only).",
)
_origin_option = click.option("--origin", "origin_id", type=int, default=0, show_default=True, help="Origin id.")


@importer_cli.command("import")
@click.argument("config_path")
@click.option(
    "--items",
    "items_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="JSON or JSON lines file of parsed items.",
)
@_origin_option
@_inline_option
@_summary_option
@click.pass_context
def importer_import(ctx, config_path: str, items_path: Path, origin_id: int, inline: bool, summary_json: bool):
    """Import parsed items with the processor defined in CONFIG_PATH."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if summary_json and not inline:
        raise click.ClickException("--summary-json is only available for --inline runs.")
    run = _create_run(config_path, kind=ImportRunKind.IMPORT, origin_id=origin_id, items_path=items_path)
    _launch(app, run, inline=inline, summary_json=summary_json)


@importer_cli.command("clear")
@click.argument("config_path")
@_origin_option
@_inline_option
@_summary_option
@click.pass_context
def importer_clear(ctx, config_path: str, origin_id: int, inline: bool, summary_json: bool):
    """Delete every entity previously imported for an origin."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if summary_json and not inline:
        raise click.ClickException("--summary-json is only available for --inline runs.")
    run = _create_run(config_path, kind=ImportRunKind.CLEAR, origin_id=origin_id)
    _launch(app, run, inline=inline, summary_json=summary_json)


@importer_cli.command("expire")
@click.argument("config_path")
@_origin_option
@click.option("--max-age", type=int, help="Override the processor's expire_after, in seconds.")
@_inline_option
@_summary_option
@click.pass_context
def importer_expire(ctx, config_path: str, origin_id: int, max_age: Optional[int], inline: bool, summary_json: bool):
    """Delete entities imported longer ago than the expiry age."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if summary_json and not inline:
        raise click.ClickException("--summary-json is only available for --inline runs.")
    run = _create_run(config_path, kind=ImportRunKind.EXPIRE, origin_id=origin_id, max_age=max_age)
    _launch(app, run, inline=inline, summary_json=summary_json)


def _run_payload(run: ImportRun) -> dict:
    return {
        "run_id": run.id,
        "processor": run.processor_id,
        "origin_id": run.origin_id,
        "kind": run.kind.value,
        "status": run.status.value,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "finished_at": run.finished_at.isoformat() if run.finished_at else None,
        "state": run.state_json,
        "counts": run.counts_json,
        "messages": run.messages_json,
        "error": run.error_summary,
    }


@importer_cli.command("status")
@click.argument("run_id", type=int, required=False)
@click.option("--limit", type=int, default=10, show_default=True, help="Runs to list when no id is given.")
@click.pass_context
def importer_status(ctx, run_id: Optional[int], limit: int):
    """Show a run, or the most recent runs."""
    info = ctx.ensure_object(ScriptInfo)
    info.load_app()
    if run_id is not None:
        run = db.session.get(ImportRun, run_id)
        if run is None:
            raise click.ClickException(f"Import run {run_id} not found.")
        click.echo(json.dumps(_run_payload(run), indent=2, sort_keys=True))
        return

    runs = db.session.query(ImportRun).order_by(ImportRun.id.desc()).limit(limit).all()
    if not runs:
        click.echo("No import runs recorded.")
        return
    for run in runs:
        click.echo(f"{run.id}\t{run.kind.value}\t{run.processor_id}:{run.origin_id}\t{run.status.value}")


@importer_cli.group(name="config")
def config_group():
    """Inspect processor configurations."""


@config_group.command("show")
@click.argument("config_path")
@click.pass_context
def config_show(ctx, config_path: str):
    """Print a processor configuration and the targets it can map to."""
    info = ctx.ensure_object(ScriptInfo)
    info.load_app()
    try:
        config = load_config_for_app(config_path)
    except ImporterError as exc:
        raise click.ClickException(str(exc)) from exc

    processor = build_processor(config)
    payload = {
        "id": config.id,
        "entity_kind": config.entity_kind,
        "update_existing": config.update_existing.value,
        "skip_hash_check": config.skip_hash_check,
        "process_limit": config.process_limit,
        "authorize": config.authorize,
        "expire_after": config.expire_after,
        "checksum": config.checksum,
        "mappings": config.mapping_payload(),
        "targets": {
            key: {
                "name": descriptor.label,
                "description": descriptor.description,
                "optional_unique": descriptor.optional_unique,
                "callback": callable(descriptor.callback),
            }
            for key, descriptor in processor.targets.items()
        },
    }
    click.echo(json.dumps(payload, indent=2))


@importer_cli.group(name="worker")
@click.pass_context
def worker_group(ctx):
    """Manage the importer background worker."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    state = app.extensions.get("importer", {})
    if not state.get("worker_enabled") and not app.config.get("IMPORTER_WORKER_ENABLED"):
        click.echo(
            "Warning: IMPORTER_WORKER_ENABLED is false. Commands will still run, "
            "but enable the flag to surface accurate health status.",
            err=True,
        )


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--pool", type=str, help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').")
@click.option("--queues", default=DEFAULT_QUEUE_NAME, show_default=True, help="Comma-separated queue list to consume.")
@click.pass_context
def worker_run(ctx, loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str):
    """
    Start the Celery worker in the current process.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)
    app.extensions.setdefault("importer", {})["worker_enabled"] = True

    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])

    click.echo(f"Starting importer worker (queues: {queues}, loglevel: {loglevel})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
@click.pass_context
def worker_ping(ctx, timeout: float):
    """
    Validate worker connectivity by executing the heartbeat task.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)
    task = celery_app.tasks.get("importer.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'importer.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc

    click.echo(json.dumps(payload, indent=2))
