import pytest

from feedsync.importer.errors import ValidationError
from feedsync.importer.mapping import MappingRule
from feedsync.importer.pipeline.executor import MappingExecutor
from feedsync.importer.pipeline.source import FeedSource, MappingSource, ParserResult
from feedsync.importer.pipeline.storage import SQLAlchemyEntityStorage
from feedsync.importer.registry import TargetDescriptor, TargetRegistry
from feedsync.importer.targets import default_contributors


@pytest.fixture
def source():
    return FeedSource(processor_id="articles", origin_id=1)


@pytest.fixture
def targets():
    return TargetRegistry(default_contributors()).build_targets("article")


def _record(source):
    return SQLAlchemyEntityStorage("article").new_entity(source)


def _result(item):
    result = ParserResult([item])
    result.shift_item()
    return result


def test_default_setter_routes_unique_keys_to_linkage(source, targets):
    record = _record(source)
    rules = [
        MappingRule(source="link", target="url"),
        MappingRule(source="id", target="guid"),
        MappingRule(source="description", target="body"),
    ]

    MappingExecutor(targets).apply(source, _result({"link": "https://example.org/1", "id": "g1", "description": "Hi"}), record, rules)

    assert record.feed_item.url == "https://example.org/1"
    assert record.feed_item.guid == "g1"
    assert record.body == "Hi"
    assert "url" not in (record.fields_json or {})


def test_linkage_values_are_stored_stripped(source, targets):
    record = _record(source)
    rules = [MappingRule(source="link", target="url"), MappingRule(source="id", target="guid")]

    MappingExecutor(targets).apply(source, _result({"link": ["https://example.org/1\n"], "id": "  "}), record, rules)

    assert record.feed_item.url == "https://example.org/1"
    assert record.feed_item.guid is None


def test_missing_source_values_become_empty_strings(source, targets):
    record = _record(source)

    MappingExecutor(targets).apply(source, _result({}), record, [MappingRule(source="description", target="body")])

    assert record.body == ""


def test_targets_are_cleared_before_mapping(source, targets):
    record = _record(source)
    record.title = "Old title"
    record.set_field("tags", ["stale"])
    record.feed_item.guid = "old-guid"
    rules = [
        MappingRule(source="title", target="title"),
        MappingRule(source="tags", target="tags"),
        MappingRule(source="guid", target="guid"),
    ]

    MappingExecutor(targets).apply(source, _result({"tags": ["fresh"]}), record, rules)

    assert record.title is None
    assert record.get_field("tags") == ["fresh"]
    assert record.feed_item.guid is None


def test_mapping_is_idempotent_on_a_loaded_record(source, targets):
    record = _record(source)
    rules = [MappingRule(source="tags", target="tags"), MappingRule(source="title", target="title")]
    result = _result({"tags": ["a", "b"], "title": "T"})
    executor = MappingExecutor(targets)

    executor.apply(source, result, record, rules)
    first = (record.title, list(record.get_field("tags")))
    executor.apply(source, result, record, rules)

    assert (record.title, record.get_field("tags")) == first


def test_later_rules_overwrite_earlier_rules(source, targets):
    record = _record(source)
    rules = [MappingRule(source="summary", target="body"), MappingRule(source="content", target="body")]

    MappingExecutor(targets).apply(source, _result({"summary": "short", "content": "long"}), record, rules)

    assert record.body == "long"


def test_cardinality_one_keeps_only_first_value(source, targets):
    record = _record(source)

    MappingExecutor(targets).apply(
        source, _result({"categories": ["A", "B"]}), record, [MappingRule(source="categories", target="category")]
    )

    assert record.get_field("category") == ["A"]


def test_unbounded_list_target_appends_across_rules(source, targets):
    record = _record(source)
    rules = [MappingRule(source="tags", target="tags"), MappingRule(source="keywords", target="tags")]

    MappingExecutor(targets).apply(source, _result({"tags": ["a", "b"], "keywords": "c"}), record, rules)

    assert record.get_field("tags") == ["a", "b", "c"]


def test_mapping_option_can_limit_cardinality(source, targets):
    record = _record(source)
    rule = MappingRule(source="tags", target="tags", extra={"cardinality": 2})

    MappingExecutor(targets).apply(source, _result({"tags": ["a", "b", "c"]}), record, [rule])

    assert record.get_field("tags") == ["a", "b"]


def test_descriptor_callback_owns_value_interpretation(source):
    seen = []

    def callback(feed_source, record, target, value, mapping):
        seen.append((target, value, mapping.extra.get("format")))
        record.set_field("body", "|".join(value))

    def contributor(targets, entity_kind, context):
        targets["joined"] = TargetDescriptor(id="joined", callback=callback, real_target="body")

    targets = TargetRegistry([contributor]).build_targets("article")
    record = _record(source)
    record.body = "previous"
    rule = MappingRule(source="parts", target="joined", extra={"format": "pipe"})

    MappingExecutor(targets).apply(source, _result({"parts": ["x", "y"]}), record, [rule])

    assert seen == [("joined", ["x", "y"], "pipe")]
    assert record.body == "x|y"


def test_unknown_target_uses_default_setter(source, targets):
    record = _record(source)

    MappingExecutor(targets).apply(source, _result({"score": 4}), record, [MappingRule(source="score", target="score")])

    assert record.get_field("score") == 4


def test_source_callback_takes_precedence_over_accessor(source, targets):
    record = _record(source)
    sources = {
        "parent:title": MappingSource(
            name="parent:title",
            callback=lambda feed_source, result, key: f"{result.title} / {result.current_item['title']}",
        )
    }
    result = ParserResult([{"title": "Entry"}], title="Feed")
    result.shift_item()

    MappingExecutor(targets, sources).apply(source, result, record, [MappingRule(source="parent:title", target="title")])

    assert record.title == "Feed / Entry"


def test_status_and_date_callbacks_coerce_values(source, targets):
    record = _record(source)
    rules = [MappingRule(source="published", target="status"), MappingRule(source="date", target="published_at")]

    MappingExecutor(targets).apply(source, _result({"published": "0", "date": "2024-03-01T10:00:00Z"}), record, rules)

    assert record.status is False
    assert record.published_at.year == 2024
    assert record.published_at.hour == 10


def test_invalid_date_raises_validation_error(source, targets):
    record = _record(source)

    with pytest.raises(ValidationError) as excinfo:
        MappingExecutor(targets).apply(
            source, _result({"date": "not a date"}), record, [MappingRule(source="date", target="published_at")]
        )

    assert excinfo.value.field == "published_at"
