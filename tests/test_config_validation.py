import pytest

from config.validation import validate_and_exit, validate_environment

PRODUCTION_ENV = {
    "SECRET_KEY": "a" * 64,
    "DATABASE_URL": "postgresql://feedsync@localhost/feedsync",
}


@pytest.fixture
def production_env(monkeypatch):
    for key in ("IMPORTER_PROCESS_LIMIT", "IMPORTER_CONFIG_DIR", "IMPORTER_WORKER_ENABLED", "CELERY_BROKER_URL"):
        monkeypatch.delenv(key, raising=False)
    for key, value in PRODUCTION_ENV.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


def test_non_production_environments_skip_validation(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)

    assert validate_environment("development") == (True, [])


def test_valid_production_environment(production_env):
    assert validate_environment("production") == (True, [])


def test_missing_secret_and_database(production_env):
    production_env.setenv("SECRET_KEY", "your-secret-key")
    production_env.delenv("DATABASE_URL")

    is_valid, errors = validate_environment("production")

    assert not is_valid
    assert len(errors) == 2


@pytest.mark.parametrize("value", ["-1", "fifty"])
def test_invalid_process_limit(production_env, value):
    production_env.setenv("IMPORTER_PROCESS_LIMIT", value)

    is_valid, errors = validate_environment("production")

    assert not is_valid
    assert "IMPORTER_PROCESS_LIMIT" in errors[0]


def test_missing_config_dir(production_env, tmp_path):
    production_env.setenv("IMPORTER_CONFIG_DIR", str(tmp_path / "missing"))

    _, errors = validate_environment("production")

    assert errors == [f"IMPORTER_CONFIG_DIR points to a missing directory: {tmp_path / 'missing'}"]


def test_worker_requires_broker(production_env):
    production_env.setenv("IMPORTER_WORKER_ENABLED", "true")

    _, errors = validate_environment("production")

    assert any("CELERY_BROKER_URL" in error for error in errors)


def test_validate_and_exit(production_env, capsys):
    production_env.delenv("DATABASE_URL")

    with pytest.raises(SystemExit):
        validate_and_exit("production")

    assert "DATABASE_URL is required" in capsys.readouterr().err
