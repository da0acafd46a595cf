"""
Tests for ChangeDetector - snapshots and create/modify/delete diffs.
"""

import logging
import os
import time

import pytest

from report_agent.logging_config import CHANGE_LOGGER_NAME
from report_agent.models import ChangeAction, ReportFile
from report_agent.services.change_detector import ChangeDetector

pytestmark = pytest.mark.asyncio


def entry(name: str, mtime: float, owner: str = "alice") -> ReportFile:
    return ReportFile(
        filename=name, full_path=f"/upload/{name}", modified_time=mtime, owner=owner
    )


def actions(events):
    return sorted((e.action, e.filename) for e in events)


@pytest.fixture
def detector():
    return ChangeDetector(report_extension=".xml")


class TestDiff:
    async def test_create_modify_delete(self):
        previous = {"A": entry("A", 1.0), "B": entry("B", 2.0), "D": entry("D", 1.0)}
        current = {"A": entry("A", 1.0), "B": entry("B", 3.0), "C": entry("C", 1.0)}

        events = ChangeDetector.diff(previous, current)

        assert actions(events) == [
            (ChangeAction.CREATE, "C"),
            (ChangeAction.DELETE, "D"),
            (ChangeAction.MODIFY, "B"),
        ]

    async def test_mtime_must_increase(self):
        """Samme eller ældre mtime er ikke en ændring."""
        previous = {"A": entry("A", 5.0), "B": entry("B", 5.0)}
        current = {"A": entry("A", 5.0), "B": entry("B", 4.0)}

        assert ChangeDetector.diff(previous, current) == []

    async def test_delete_carries_previous_owner(self):
        events = ChangeDetector.diff({"A": entry("A", 1.0, owner="bob")}, {})

        assert events[0].action is ChangeAction.DELETE
        assert events[0].owner == "bob"

    async def test_identical_snapshots(self):
        snap = {"A": entry("A", 1.0)}

        assert ChangeDetector.diff(snap, dict(snap)) == []


class TestSnapshot:
    async def test_skips_hidden_files_and_directories(self, detector, tmp_path):
        (tmp_path / "Sales_2024.xml").write_text("x")
        (tmp_path / "notes.txt").write_text("y")
        (tmp_path / ".hidden.xml").write_text("z")
        (tmp_path / "subdir").mkdir()

        snapshot = await detector.snapshot(str(tmp_path))

        assert sorted(snapshot) == ["Sales_2024.xml", "notes.txt"]
        assert snapshot["Sales_2024.xml"].department == "Sales"
        assert snapshot["notes.txt"].department is None
        assert snapshot["notes.txt"].size_bytes == 1
        assert snapshot["notes.txt"].owner

    async def test_missing_directory_raises(self, detector, tmp_path):
        with pytest.raises(OSError):
            await detector.snapshot(str(tmp_path / "missing"))


class TestPoll:
    async def test_first_poll_only_seeds(self, detector, tmp_path):
        (tmp_path / "a.xml").write_text("1")

        assert await detector.poll(str(tmp_path)) == []
        assert detector.has_snapshot(str(tmp_path))
        assert await detector.poll(str(tmp_path)) == []

    async def test_detects_changes_between_polls(self, detector, tmp_path):
        a = tmp_path / "a.xml"
        b = tmp_path / "b.xml"
        a.write_text("1")
        b.write_text("1")
        await detector.poll(str(tmp_path))

        later = time.time() + 10
        os.utime(a, (later, later))
        b.unlink()
        (tmp_path / "c.xml").write_text("new")

        events = await detector.poll(str(tmp_path))

        assert actions(events) == [
            (ChangeAction.CREATE, "c.xml"),
            (ChangeAction.DELETE, "b.xml"),
            (ChangeAction.MODIFY, "a.xml"),
        ]
        assert actions(detector.recent_events) == actions(events)
        assert detector.last_poll_at is not None

    async def test_rename_is_delete_plus_create(self, detector, tmp_path):
        (tmp_path / "old.xml").write_text("1")
        await detector.poll(str(tmp_path))

        os.rename(tmp_path / "old.xml", tmp_path / "new.xml")
        events = await detector.poll(str(tmp_path))

        assert actions(events) == [
            (ChangeAction.CREATE, "new.xml"),
            (ChangeAction.DELETE, "old.xml"),
        ]

    async def test_events_are_written_to_change_log(self, detector, tmp_path, caplog):
        await detector.poll(str(tmp_path))
        (tmp_path / "Sales.xml").write_text("1")

        with caplog.at_level(logging.INFO, logger=CHANGE_LOGGER_NAME):
            await detector.poll(str(tmp_path))

        assert any(
            "File: Sales.xml, Action: create" in record.getMessage()
            for record in caplog.records
        )

    async def test_forget_reseeds(self, detector, tmp_path):
        await detector.poll(str(tmp_path))
        detector.forget(str(tmp_path))
        (tmp_path / "a.xml").write_text("1")

        assert await detector.poll(str(tmp_path)) == []
