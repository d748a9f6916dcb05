from datetime import datetime, timedelta, timezone

import pytest

from feedsync.importer.pipeline import ClearController, RunState, SQLAlchemyEntityStorage
from feedsync.models import FeedItem, ImportedEntity, db


def _seed(count, *, origin_id=1, processor_id="articles", kind="article", imported_at=None):
    for index in range(count):
        entity = ImportedEntity(entity_kind=kind, title=f"{processor_id}-{origin_id}-{index}")
        entity.feed_item = FeedItem(
            entity_type=kind,
            processor_id=processor_id,
            origin_id=origin_id,
            fingerprint="f",
            guid=f"{processor_id}-{origin_id}-{index}",
            imported_at=imported_at or datetime.now(timezone.utc),
        )
        db.session.add(entity)
    db.session.commit()


@pytest.fixture
def controller_factory(processor_factory):
    def _factory(**overrides):
        config = processor_factory(**overrides).config
        return ClearController(config, SQLAlchemyEntityStorage(config.entity_kind))

    return _factory


def test_clear_pages_through_scope(controller_factory, feed_source):
    _seed(5)
    _seed(2, origin_id=2)
    controller = controller_factory(process_limit=2)
    state = RunState()

    progress = [controller.clear(feed_source, state)]
    while not state.is_complete:
        progress.append(controller.clear(feed_source, state))

    assert progress == [0.4, 0.8, 1.0]
    assert progress == sorted(progress)
    assert state.deleted == state.total == 5
    assert db.session.query(ImportedEntity).count() == 2
    assert db.session.query(FeedItem).filter(FeedItem.origin_id == 1).count() == 0
    assert [message.text for message in controller.report(state)] == ["Deleted 5 articles."]


def test_clear_with_unlimited_page_deletes_everything_at_once(controller_factory, feed_source):
    _seed(3)
    controller = controller_factory(process_limit=0)
    state = RunState()

    assert controller.clear(feed_source, state) == 1.0
    assert state.deleted == 3


def test_clear_empty_scope_completes_immediately(controller_factory, feed_source):
    controller = controller_factory()
    state = RunState()

    assert controller.clear(feed_source, state) == 1.0
    assert state.deleted == 0
    assert [message.text for message in controller.report(state)] == ["There are no articles to be deleted."]


def test_clear_completes_when_scope_shrinks_mid_cycle(controller_factory, feed_source):
    _seed(4)
    controller = controller_factory(process_limit=2)
    state = RunState()

    controller.clear(feed_source, state)
    db.session.query(FeedItem).delete(synchronize_session=False)
    db.session.commit()

    assert controller.clear(feed_source, state) == 1.0
    assert state.deleted == 2
    assert state.deleted <= state.total


def test_clear_reports_singular_label(controller_factory, feed_source):
    _seed(1)
    controller = controller_factory()
    state = RunState()

    controller.clear(feed_source, state)

    assert [message.text for message in controller.report(state)] == ["Deleted 1 article."]


def test_expire_never_completes_without_deleting(controller_factory, feed_source):
    _seed(2, imported_at=datetime.now(timezone.utc) - timedelta(days=30))
    controller = controller_factory(expire_after=-1)
    state = RunState()

    assert controller.expire(feed_source, state) == 1.0
    assert db.session.query(ImportedEntity).count() == 2


def test_expire_removes_only_old_items(controller_factory, feed_source):
    _seed(3, imported_at=datetime.now(timezone.utc) - timedelta(days=2))
    _seed(1)
    controller = controller_factory(expire_after=3600)
    state = RunState()

    while not state.is_complete:
        controller.expire(feed_source, state)

    assert state.deleted == 3
    assert db.session.query(ImportedEntity).count() == 1
    assert [message.text for message in controller.report(state, operation="expire")] == ["Expired 3 articles."]


def test_expire_argument_overrides_configured_age(controller_factory, feed_source):
    _seed(2, imported_at=datetime.now(timezone.utc) - timedelta(hours=2))
    controller = controller_factory(expire_after=-1)
    state = RunState()

    controller.expire(feed_source, state, max_age=60)

    assert state.deleted == 2
