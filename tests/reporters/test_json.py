"""Tests for JsonReporter.

Tests JSON output generation for command results.
"""

import json
from datetime import datetime, timezone
from pathlib import Path

from osscmd.models import (
    FailurePolicy,
    ListSummary,
    ObjectEntry,
    ObjectHead,
    TransferCounts,
)
from osscmd.reporters.base import Reporter
from osscmd.reporters.json_reporter import JsonReporter, to_jsonable


class TestToJsonable:
    """Tests for to_jsonable conversion."""

    def test_dataclass(self):
        head = ObjectHead("bucket", "k", 200, 3, datetime(2024, 1, 2, tzinfo=timezone.utc))
        data = to_jsonable(head)
        assert data["key"] == "k"
        assert data["content_length"] == 3
        assert data["last_modified"] == "2024-01-02T00:00:00+00:00"
        assert data["headers"] == {}

    def test_transfer_counts(self):
        assert to_jsonable(TransferCounts(total=3, finish=1, skip=1)) == {
            "total": 3, "finish": 1, "skip": 1, "fail": 1,
        }

    def test_enum_bytes_and_containers(self):
        assert to_jsonable(FailurePolicy.CONTINUE) == FailurePolicy.CONTINUE.value
        assert to_jsonable(b"abc") == "abc"
        assert to_jsonable((1, [b"x"])) == [1, ["x"]]
        assert to_jsonable({1: None}) == {"1": None}

    def test_plain_values_pass_through(self):
        assert to_jsonable(204) == 204
        assert to_jsonable("text") == "text"


class TestJsonReporter:
    """Tests for JsonReporter output."""

    def test_inherits_from_reporter(self):
        assert isinstance(JsonReporter(), Reporter)

    def test_generates_output_without_path(self):
        reporter = JsonReporter()
        output = reporter.on_command_complete("rm", 204)
        assert output["command"] == "rm"
        assert output["result"] == 204
        assert "timestamp" in output
        assert "transfers" not in output
        assert "entries" not in output

    def test_records_transfers(self):
        reporter = JsonReporter()
        reporter.on_transfer_start("uploadfromdir", 2)
        reporter.on_progress("uploadfromdir", 2, 2)
        reporter.on_transfer_complete("uploadfromdir", TransferCounts(total=2, finish=2))

        output = reporter.on_command_complete("uploadfromdir", TransferCounts(total=2, finish=2))
        assert output["transfers"] == {"uploadfromdir": {"total": 2, "finish": 2, "skip": 0, "fail": 0}}

    def test_records_entries(self):
        reporter = JsonReporter()
        reporter.on_entry(ObjectEntry("bucket", "a", 1))
        output = reporter.on_command_complete("ls", ListSummary("bucket", count=1, total_size=1))
        assert [entry["key"] for entry in output["entries"]] == ["a"]
        assert output["result"]["count"] == 1

    def test_entries_can_be_excluded(self):
        reporter = JsonReporter(include_entries=False)
        reporter.on_entry(ObjectEntry("bucket", "a", 1))
        assert "entries" not in reporter.on_command_complete("ls", ListSummary("bucket"))

    def test_writes_file(self, tmp_path: Path):
        output_path = tmp_path / "nested" / "result.json"
        reporter = JsonReporter(output_path=str(output_path))

        reporter.on_command_complete("deleteallobject", TransferCounts(total=1, finish=1))

        data = json.loads(output_path.read_text(encoding="utf-8"))
        assert data["command"] == "deleteallobject"
        assert data["result"]["finish"] == 1
