"""
Utility helpers for importer feature flag checks.
"""

from __future__ import annotations

from pathlib import Path

from flask import current_app


def _get_config(app=None):
    if app is not None:
        return app.config
    return current_app.config


def is_importer_enabled(app=None) -> bool:
    """Return True when the importer feature flag is enabled."""
    config = _get_config(app)
    return bool(config.get("IMPORTER_ENABLED", False))


def is_worker_enabled(app=None) -> bool:
    config = _get_config(app)
    return bool(config.get("IMPORTER_WORKER_ENABLED", False))


def get_processor_config_dir(app=None) -> Path | None:
    """Return the directory holding processor YAML files, if configured."""
    config = _get_config(app)
    configured = config.get("IMPORTER_CONFIG_DIR")
    return Path(configured) if configured else None
