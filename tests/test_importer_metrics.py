from prometheus_client import REGISTRY

from feedsync.importer.pipeline.batch import drive_run, start_run
from feedsync.models import ImportRunKind


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_item_outcomes_and_batch_steps_are_counted(processor_factory, run_items, write_processor_config, tmp_path):
    created_before = _sample("importer_feed_items_total", processor="articles", outcome="created")
    unchanged_before = _sample("importer_feed_items_total", processor="articles", outcome="unchanged")
    processor = processor_factory()

    run_items(processor, [{"guid": "g1", "title": "T1"}])
    run_items(processor, [{"guid": "g1", "title": "T1"}])

    assert _sample("importer_feed_items_total", processor="articles", outcome="created") == created_before + 1
    assert _sample("importer_feed_items_total", processor="articles", outcome="unchanged") == unchanged_before + 1

    steps_before = _sample("importer_batch_steps_total", operation="clear", status="complete")
    deleted_before = _sample("importer_feed_entities_deleted_total", processor="articles", operation="clear")
    drive_run(start_run(write_processor_config(), kind=ImportRunKind.CLEAR, origin_id=1).id)

    assert _sample("importer_batch_steps_total", operation="clear", status="complete") == steps_before + 1
    assert _sample("importer_feed_entities_deleted_total", processor="articles", operation="clear") == deleted_before + 1
