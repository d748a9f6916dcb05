# config/validation.py

"""
Environment variable validation for the feedsync application.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Tuple


def _validate_importer(errors: List[str]) -> None:
    raw_limit = os.environ.get("IMPORTER_PROCESS_LIMIT")
    if raw_limit is not None and raw_limit.strip():
        try:
            if int(raw_limit) < 0:
                raise ValueError(raw_limit)
        except ValueError:
            errors.append("IMPORTER_PROCESS_LIMIT must be a non-negative integer (0 processes everything in one step).")

    config_dir = os.environ.get("IMPORTER_CONFIG_DIR")
    if config_dir and not os.path.isdir(config_dir):
        errors.append(f"IMPORTER_CONFIG_DIR points to a missing directory: {config_dir}")

    if os.environ.get("IMPORTER_WORKER_ENABLED", "false").lower() == "true":
        if not os.environ.get("CELERY_BROKER_URL"):
            errors.append("CELERY_BROKER_URL is required in production when IMPORTER_WORKER_ENABLED=true")


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []

    # Only validate in production
    if flask_env != "production":
        return True, []

    secret_key = os.environ.get("SECRET_KEY", "")
    if not secret_key or secret_key in {"your-secret-key", "your_secret_key"}:
        errors.append(
            "SECRET_KEY is required in production and must not be the default value. "
            'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not os.environ.get("DATABASE_URL"):
        errors.append("DATABASE_URL is required in production. Set it to your database connection string.")

    _validate_importer(errors)

    return len(errors) == 0, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
