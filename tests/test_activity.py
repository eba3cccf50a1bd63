"""Tests for m365provision.provisioning.activity."""

import json
import logging

from m365provision.provisioning.activity import ActivityEntry, ActivityLog


class TestActivityLog:
    """Tests for ActivityLog."""

    def test_records_entries_in_memory(self):
        log = ActivityLog()

        log("Distribution List", "attempt", "Sales: attempt 1/3 (pass 1)")
        log("Distribution List", "succeeded", "Sales: added")

        assert [e.status for e in log.entries] == ["attempt", "succeeded"]
        assert log.entries[0].category == "Distribution List"
        assert log.entries[0].timestamp.tzinfo is not None

    def test_entries_for_status(self):
        log = ActivityLog()
        log("Shared Mailbox", "manual", "Support: assign manually")
        log("Security Group", "succeeded", "Finance: added")

        manual = log.entries_for("manual")
        assert len(manual) == 1
        assert manual[0].detail == "Support: assign manually"

    def test_appends_json_lines(self, tmp_path):
        path = tmp_path / "activity.jsonl"
        log = ActivityLog(path)

        log("Security Group", "succeeded", "Finance: added")
        log("Shared Mailbox", "failed", "Support: access denied")

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["category"] == "Security Group"
        assert first["status"] == "succeeded"
        assert first["detail"] == "Finance: added"
        assert "timestamp" in first

    def test_unwritable_file_does_not_raise(self, tmp_path, caplog):
        # A directory cannot be opened for appending
        log = ActivityLog(tmp_path)

        with caplog.at_level(logging.ERROR, logger="m365provision.activity"):
            log("Security Group", "succeeded", "Finance: added")

        assert len(log.entries) == 1
        assert "Failed to write activity log" in caplog.text

    def test_failures_logged_as_warnings(self, caplog):
        log = ActivityLog()

        with caplog.at_level(logging.INFO, logger="m365provision.activity"):
            log("Shared Mailbox", "failed", "Support: access denied")
            log("Security Group", "attempt", "Finance: attempt 1/3")

        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.WARNING, logging.INFO]


class TestActivityEntry:
    """Tests for ActivityEntry."""

    def test_to_dict_serializes_timestamp(self):
        entry = ActivityEntry(category="c", status="s", detail="d")
        data = entry.to_dict()
        assert data["timestamp"] == entry.timestamp.isoformat()
