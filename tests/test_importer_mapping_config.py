import pytest

from feedsync.importer.errors import ConfigurationError
from feedsync.importer.mapping import (
    EXPIRE_NEVER,
    UpdateMode,
    load_processor_config,
    parse_processor_config,
    resolve_config_path,
)


def test_load_processor_config_reads_yaml(write_processor_config):
    path = write_processor_config(
        mappings=[
            {"source": "guid", "target": "guid", "unique": True},
            {"source": "tags", "target": "tags", "cardinality": 3},
        ]
    )

    config = load_processor_config(path)

    assert config.id == "articles"
    assert config.entity_kind == "article"
    assert config.update_existing is UpdateMode.UPDATE
    assert config.process_limit == 50
    assert config.expire_after == EXPIRE_NEVER
    assert [rule.target for rule in config.unique_mappings] == ["guid"]
    assert config.mappings[1].extra == {"cardinality": 3}
    assert config.mapping_payload()[1] == {"source": "tags", "target": "tags", "unique": False, "cardinality": 3}
    assert config.checksum and len(config.checksum) == 64
    assert str(config.path) == path


def test_defaults_apply_to_minimal_config():
    config = parse_processor_config({"id": "minimal"}, default_process_limit=10)

    assert config.entity_kind == "article"
    assert config.update_existing is UpdateMode.SKIP
    assert config.process_limit == 10
    assert config.authorize is True
    assert config.mappings == ()


@pytest.mark.parametrize(
    "raw",
    [
        [],
        {},
        {"id": "  "},
        {"id": "x", "update_existing": "replace"},
        {"id": "x", "process_limit": -1},
        {"id": "x", "process_limit": "lots"},
        {"id": "x", "expire_after": -5},
        {"id": "x", "mappings": "guid"},
        {"id": "x", "mappings": ["guid"]},
        {"id": "x", "mappings": [{"target": "guid"}]},
        {"id": "x", "mappings": [{"source": "guid"}]},
    ],
)
def test_invalid_configurations_are_rejected(raw):
    with pytest.raises(ConfigurationError):
        parse_processor_config(raw)


def test_missing_file_raises_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_processor_config(tmp_path / "missing.yaml")


def test_checksum_tracks_configuration_content():
    first = parse_processor_config({"id": "x", "process_limit": 5})
    second = parse_processor_config({"id": "x", "process_limit": 6})

    assert first.checksum != second.checksum


def test_resolve_config_path_uses_config_dir(app, write_processor_config):
    path = write_processor_config("feeds")

    assert str(resolve_config_path("feeds")) == path
    assert str(resolve_config_path("feeds.yaml")) == path
    assert str(resolve_config_path(path)) == path
