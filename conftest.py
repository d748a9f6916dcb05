# conftest.py

import os

import pytest
import yaml

# Set testing environment BEFORE importing app so app.py loads TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import app as flask_app  # noqa: E402
from feedsync.importer import get_celery_app  # noqa: E402
from feedsync.importer.extensions import ImporterExtensions, get_importer_extensions  # noqa: E402
from feedsync.importer.mapping import parse_processor_config  # noqa: E402
from feedsync.importer.pipeline import (  # noqa: E402
    FeedSource,
    FeedsProcessor,
    ParserResult,
    RunState,
    SQLAlchemyEntityStorage,
)
from feedsync.models import db  # noqa: E402
from feedsync.utils.logging_config import setup_logging  # noqa: E402

BASE_PROCESSOR = {
    "id": "articles",
    "entity_kind": "article",
    "update_existing": "update",
    "process_limit": 50,
    "mappings": [
        {"source": "guid", "target": "guid", "unique": True},
        {"source": "title", "target": "title"},
        {"source": "description", "target": "body"},
    ],
}


@pytest.fixture(scope="function")
def app(tmp_path):
    """Flask application with a fresh schema and importer hooks per test."""
    config_dir = tmp_path / "processors"
    config_dir.mkdir()
    flask_app.config.update(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret-key-for-testing-only",
            "LOG_LEVEL": "DEBUG",
            "IMPORTER_ENABLED": True,
            "IMPORTER_WORKER_ENABLED": False,
            "IMPORTER_PROCESS_LIMIT": 50,
            "IMPORTER_CONFIG_DIR": str(config_dir),
        }
    )
    setup_logging(flask_app)
    flask_app.extensions["importer"]["hooks"] = ImporterExtensions()
    celery_app = get_celery_app(flask_app)
    celery_app.conf.update(task_always_eager=True, task_eager_propagates=True)
    celery_app.set_current()

    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def extensions(app):
    return get_importer_extensions(app)


@pytest.fixture
def write_processor_config(app):
    """Write a processor YAML file into IMPORTER_CONFIG_DIR and return its path."""

    def _write(name: str = "articles", **overrides):
        payload = dict(BASE_PROCESSOR)
        payload.update(overrides)
        path = os.path.join(app.config["IMPORTER_CONFIG_DIR"], f"{name}.yaml")
        with open(path, "w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False)
        return path

    return _write


@pytest.fixture
def processor_factory(app, extensions):
    """Build a processor over the SQLAlchemy storage from config overrides."""

    def _factory(**overrides) -> FeedsProcessor:
        payload = dict(BASE_PROCESSOR)
        payload.update(overrides)
        config = parse_processor_config(payload)
        return FeedsProcessor(config, SQLAlchemyEntityStorage(config.entity_kind), extensions=extensions)

    return _factory


@pytest.fixture
def feed_source():
    return FeedSource(processor_id="articles", origin_id=1)


@pytest.fixture
def run_items(feed_source):
    """Process ``items`` through ``processor`` in one cycle and return the state and messages."""

    def _run(processor, items, *, source=None, state=None):
        state = state or RunState()
        messages = []
        result = ParserResult(items)
        while True:
            messages = processor.process(source or feed_source, result, state)
            if state.is_complete:
                return state, messages

    return _run
