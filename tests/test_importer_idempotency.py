from feedsync.importer.mapping import MappingRule
from feedsync.importer.pipeline.executor import MappingExecutor
from feedsync.importer.pipeline.idempotency import resolve_existing_entity_id
from feedsync.importer.pipeline.source import FeedSource, ParserResult
from feedsync.importer.pipeline.storage import SQLAlchemyEntityStorage
from feedsync.importer.registry import TargetRegistry
from feedsync.importer.targets import default_contributors
from feedsync.models import FeedItem, ImportedEntity, db


def _persist(source, *, title=None, url=None, guid=None, kind="article"):
    entity = ImportedEntity(entity_kind=kind, title=title)
    entity.feed_item = FeedItem(
        entity_type=kind,
        processor_id=source.processor_id,
        origin_id=source.origin_id,
        fingerprint="x",
        url=url,
        guid=guid,
    )
    db.session.add(entity)
    db.session.commit()
    return entity.id


def _resolve(source, item, rules, storage=None):
    storage = storage or SQLAlchemyEntityStorage("article")
    targets = TargetRegistry(default_contributors()).build_targets("article")
    executor = MappingExecutor(targets)
    result = ParserResult([item])
    result.shift_item()
    return resolve_existing_entity_id(storage, source, result, rules, targets, executor.source_value)


def test_resolves_by_guid_within_scope(app):
    source = FeedSource("articles", 1)
    entity_id = _persist(source, guid="g1")
    rules = [MappingRule(source="guid", target="guid", unique=True)]

    assert _resolve(source, {"guid": "g1"}, rules) == entity_id
    assert _resolve(FeedSource("articles", 2), {"guid": "g1"}, rules) is None
    assert _resolve(FeedSource("other", 1), {"guid": "g1"}, rules) is None


def test_non_unique_rules_are_ignored(app):
    source = FeedSource("articles", 1)
    _persist(source, guid="g1")

    assert _resolve(source, {"guid": "g1"}, [MappingRule(source="guid", target="guid")]) is None


def test_first_matching_unique_rule_wins(app):
    source = FeedSource("articles", 1)
    by_url = _persist(source, url="https://example.org/a")
    by_guid = _persist(source, guid="g2")
    rules = [
        MappingRule(source="link", target="url", unique=True),
        MappingRule(source="guid", target="guid", unique=True),
    ]

    assert _resolve(source, {"link": "https://example.org/a", "guid": "g2"}, rules) == by_url
    assert _resolve(source, {"link": "https://example.org/missing", "guid": "g2"}, rules) == by_guid


def test_empty_unique_values_never_match(app):
    source = FeedSource("articles", 1)
    _persist(source)
    rules = [MappingRule(source="guid", target="guid", unique=True)]

    assert _resolve(source, {"guid": ""}, rules) is None
    assert _resolve(source, {}, rules) is None


def test_title_lookup_uses_stored_entities(app):
    source = FeedSource("articles", 1)
    entity_id = _persist(source, title="Hello world")
    _persist(source, title="Hello world", kind="page")
    rules = [MappingRule(source="title", target="title", unique=True)]

    assert _resolve(source, {"title": " Hello world "}, rules) == entity_id
    assert _resolve(source, {"title": "Other"}, rules) is None


def test_list_values_use_first_entry(app):
    source = FeedSource("articles", 1)
    entity_id = _persist(source, guid="g1")
    rules = [MappingRule(source="guid", target="guid", unique=True)]

    assert _resolve(source, {"guid": ["g1", "g9"]}, rules) == entity_id


def test_title_lookup_is_scoped_to_origin(app):
    _persist(FeedSource("articles", 1), title="Hello world")
    rules = [MappingRule(source="title", target="title", unique=True)]

    assert _resolve(FeedSource("articles", 2), {"title": "Hello world"}, rules) is None
    assert _resolve(FeedSource("other", 1), {"title": "Hello world"}, rules) is None


def test_padded_guid_matches_stored_value(app):
    source = FeedSource("articles", 1)
    entity_id = _persist(source, guid="g1")
    rules = [MappingRule(source="guid", target="guid", unique=True)]

    assert _resolve(source, {"guid": "  g1\t"}, rules) == entity_id
    assert _resolve(source, {"guid": "   "}, rules) is None
