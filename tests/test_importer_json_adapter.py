import json

import pytest

from feedsync.importer.adapters import JSONItemsError, JSONItemsLineError, load_items, parse_items


def test_parses_json_array():
    result = parse_items(json.dumps([{"guid": "g1"}, {"guid": "g2"}]))

    assert len(result) == 2
    assert result.shift_item() == {"guid": "g1"}


def test_parses_document_with_feed_metadata():
    payload = {"title": "Example feed", "link": "https://example.org", "items": [{"guid": "g1"}]}

    result = parse_items(json.dumps(payload))

    assert result.title == "Example feed"
    assert result.link == "https://example.org"
    assert result.items == [{"guid": "g1"}]


def test_parses_json_lines_and_single_objects():
    result = parse_items('{"guid": "g1"}\n\n{"guid": "g2"}\n')

    assert [item["guid"] for item in result.items] == ["g1", "g2"]
    assert parse_items('{"guid": "only"}').items == [{"guid": "only"}]
    assert len(parse_items("   ")) == 0


def test_reports_bad_json_lines_with_line_numbers():
    with pytest.raises(JSONItemsLineError) as excinfo:
        parse_items('{"guid": "g1"}\n{broken\n')

    assert excinfo.value.line_number == 2


def test_rejects_non_object_items():
    with pytest.raises(JSONItemsError, match="Item 2"):
        parse_items(json.dumps([{"guid": "g1"}, "g2"]))
    with pytest.raises(JSONItemsError):
        parse_items("42")


def test_load_items_reads_file(tmp_path):
    path = tmp_path / "items.json"
    path.write_text(json.dumps([{"guid": "g1"}]), encoding="utf-8")

    assert load_items(path).items == [{"guid": "g1"}]
    with pytest.raises(JSONItemsError, match="not found"):
        load_items(tmp_path / "missing.json")
