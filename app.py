# app.py

import logging
import os

from dotenv import load_dotenv
from flask import Flask
from sqlalchemy import event

# Load environment variables from .env file first
load_dotenv()

# Module imports after load_dotenv() - E402 is intentional
from config import DevelopmentConfig, ProductionConfig, TestingConfig  # noqa: E402
from config.validation import validate_and_exit  # noqa: E402
from feedsync.importer import init_importer  # noqa: E402
from feedsync.models import db  # noqa: E402
from feedsync.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)

app = Flask(__name__)

flask_env = os.environ.get("FLASK_ENV", "development")
if flask_env == "production":
    validate_and_exit(flask_env)

if flask_env == "production":
    app.config.from_object(ProductionConfig)
elif flask_env == "testing":
    app.config.from_object(TestingConfig)
else:
    app.config.from_object(DevelopmentConfig)

db.init_app(app)
setup_logging(app)


def _configure_sqlite_connection(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
    """Apply pragmas that let the web process and the worker share one SQLite file."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=5000")
    finally:
        cursor.close()


with app.app_context():
    engine = db.engine
    if engine.url.drivername.startswith("sqlite") and not getattr(engine, "_sqlite_pragmas_configured", False):
        event.listen(engine, "connect", _configure_sqlite_connection)
        engine._sqlite_pragmas_configured = True  # type: ignore[attr-defined]
    # Tests create their own schema per database file
    if not app.config.get("TESTING", False):
        db.create_all()

init_importer(app)


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
