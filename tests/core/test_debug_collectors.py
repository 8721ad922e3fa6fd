import datetime as dt
import json

from darkplanner.core.debug import (
    JsonDebugWriter,
    JsonlDebugWriter,
    ListDebugCollector,
    NullDebugCollector,
    ScopedDebugCollector,
    build_debug_collector,
)
from darkplanner.core.models import Edge


def test_list_collector_records_events():
    collector = ListDebugCollector()
    collector.emit("stage1", {"b": 2, "a": 1}, ts="2025-01-01T00:00:00Z", location="munich", night="2025-01-01")
    assert len(collector.events) == 1
    event = collector.events[0]
    assert event["stage"] == "stage1"
    assert event["location"] == "munich"
    # payload should be key-sorted for determinism
    assert list(event["payload"].keys()) == ["a", "b"]


def test_payload_values_are_json_safe():
    collector = ListDebugCollector()
    ts = dt.datetime(2025, 1, 1, 18, tzinfo=dt.timezone.utc)
    collector.emit("s", {"when": ts, "edge": Edge.ASTR_START, "days": frozenset({6, 5})}, ts=ts)
    event = collector.events[0]
    assert event["ts"] == "2025-01-01T18:00:00+00:00"
    assert event["payload"] == {"days": [5, 6], "edge": "astrStart", "when": "2025-01-01T18:00:00+00:00"}
    json.dumps(event)


def test_jsonl_writer(tmp_path):
    path = tmp_path / "debug.jsonl"
    writer = JsonlDebugWriter(path)
    writer.emit("stage1", {"z": 1, "y": {"b": 1, "a": 2}}, ts=1)
    writer.emit("stage2", {"b": [2, 1]}, ts=2, location="l", night="n")
    writer.close()

    events = [json.loads(line) for line in path.read_text().splitlines()]
    assert [e["stage"] for e in events] == ["stage1", "stage2"]
    assert list(events[0]["payload"]["y"].keys()) == ["a", "b"]


def test_json_writer_finalize(tmp_path):
    path = tmp_path / "debug.json"
    writer = build_debug_collector(path)
    assert isinstance(writer, JsonDebugWriter)
    writer.emit("stage", {"x": 1}, ts=None)
    writer.close()
    assert json.loads(path.read_text())[0]["payload"] == {"x": 1}


def test_scoped_collector_injects_context():
    inner = ListDebugCollector()
    scoped = ScopedDebugCollector(inner, location="svalbard", night="2025-12-15")
    scoped.emit("a", {}, ts=0)
    scoped.emit("b", {}, ts=0, night="2025-12-16")
    assert inner.events[0]["location"] == "svalbard"
    assert inner.events[1]["night"] == "2025-12-16"


def test_null_collector_noop():
    NullDebugCollector().emit("stage", {"x": 1}, ts=0)
