"""
Feed importer package.

Registers the importer CLI, the Celery worker and the processor extension
registry on the Flask app, keeping all state under ``app.extensions['importer']``.
"""

from __future__ import annotations

from typing import Any

from flask import Flask

from feedsync.utils.importer import is_importer_enabled, is_worker_enabled

from .celery_app import ensure_celery_app, get_celery_app
from .cli import get_disabled_importer_group, importer_cli
from .extensions import ImporterExtensions, get_importer_extensions

IMPORTER_EXTENSION_KEY = "importer"

__all__ = [
    "init_importer",
    "IMPORTER_EXTENSION_KEY",
    "ImporterExtensions",
    "get_celery_app",
    "get_importer_extensions",
]


def _ensure_extension_state(app: Flask) -> dict[str, Any]:
    state = app.extensions.setdefault(IMPORTER_EXTENSION_KEY, {})
    state.setdefault("enabled", False)
    state.setdefault("worker_enabled", False)
    state.setdefault("celery_app", None)
    state.setdefault("hooks", ImporterExtensions())
    return state


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    command_name = importer_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(importer_cli)
    else:
        app.cli.add_command(get_disabled_importer_group())


def init_importer(app: Flask) -> None:
    """
    Conditionally mount the importer CLI and worker based on configuration.
    """
    enabled = is_importer_enabled(app)
    state = _ensure_extension_state(app)
    state.update({"enabled": enabled, "worker_enabled": is_worker_enabled(app)})

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Importer disabled via IMPORTER_ENABLED flag; skipping registration.")
        return

    ensure_celery_app(app, state)
    _set_cli(app, enabled=True)
    app.logger.info(
        "Importer enabled",
        extra={
            "importer_config_dir": app.config.get("IMPORTER_CONFIG_DIR"),
            "importer_process_limit": app.config.get("IMPORTER_PROCESS_LIMIT"),
        },
    )
