"""
Unit tests for payload serialization and work-item ids.
"""

import base64
import json
import re

import pytest

from vouch_outbox.queue.models import (
    AnalysisPayload,
    AppInfo,
    Rect,
    WindowInfo,
    WorkItem,
    new_record_id,
)

RECORD_ID = re.compile(r"^\d{13}_[0-9a-f-]{36}$")


def test_to_json_uses_wire_names_and_sorted_keys():
    payload = AnalysisPayload(
        timestamp="2025-11-02T10:00:00.000Z",
        app=AppInfo(name="Safari", bundle_id="com.apple.Safari"),
        typed_text_chunk="hello",
        window=WindowInfo(title="Docs", id=42, bounds=Rect(x=1, y=2, w=300, h=200)),
    )

    text = payload.to_json()
    data = json.loads(text)

    assert list(data) == sorted(data)
    assert data["typedTextChunk"] == "hello"
    assert data["app"] == {"bundleId": "com.apple.Safari", "name": "Safari"}
    assert data["window"]["bounds"] == {"h": 200, "w": 300, "x": 1, "y": 2}
    assert "screenshot" not in data
    assert AnalysisPayload.from_json(text) == payload


def test_optional_fields_are_omitted():
    payload = AnalysisPayload(
        timestamp="2025-11-02T10:00:00.000Z",
        app=AppInfo(name="Terminal"),
        typed_text_chunk="ls",
    )

    data = json.loads(payload.to_json())

    assert set(data) == {"app", "timestamp", "typedTextChunk"}
    assert data["app"] == {"name": "Terminal"}


def test_make_stamps_time_and_encodes_screenshot():
    payload = AnalysisPayload.make(
        "typed", "Notes", bundle_id="com.apple.Notes", screenshot_bytes=b"\x89PNG", screenshot_mime="image/png"
    )

    assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$", payload.timestamp)
    assert payload.screenshot.mime == "image/png"
    assert base64.b64decode(payload.screenshot.data_base64) == b"\x89PNG"
    assert payload.window is None


@pytest.mark.parametrize("text", ["[]", "{}", '{"app": {"name": "x"}}', "nope"])
def test_from_json_rejects_bad_input(text):
    with pytest.raises((ValueError, KeyError, TypeError)):
        AnalysisPayload.from_json(text)


def test_record_ids_are_sortable_and_unique():
    ids = [new_record_id() for _ in range(50)]

    assert all(RECORD_ID.match(i) for i in ids)
    assert len(set(ids)) == 50
    prefixes = [i.split("_")[0] for i in ids]
    assert prefixes == sorted(prefixes)


def test_work_item_create_and_restore(payload):
    item = WorkItem.create(payload)
    restored = WorkItem.restore(item.id, payload)

    assert RECORD_ID.match(item.id)
    assert restored == item
    assert WorkItem.restore("garbage", payload).created_at == 0.0
