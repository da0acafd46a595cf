"""
Snapshot & Change Detector.

Enumerates a directory into a filename-keyed snapshot and diffs successive
snapshots into create/modify/delete events. Files are matched by name only:
a rename shows up as a delete plus a create, and content is never hashed.
"""

import logging
import stat
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Deque, Dict, List, Optional

import aiofiles.os

from report_agent.logging_config import log_file_change
from report_agent.models import (
    ChangeAction,
    ChangeEvent,
    DirectorySnapshot,
    ReportFile,
)
from report_agent.utils.file_operations import extract_department, user_name


class ChangeDetector:
    def __init__(self, report_extension: str = ".xml", history_size: int = 100):
        self._report_extension = report_extension
        self._snapshots: Dict[str, DirectorySnapshot] = {}
        self._recent_events: Deque[ChangeEvent] = deque(maxlen=history_size)
        self.last_poll_at: Optional[datetime] = None

    async def snapshot(self, path: str) -> DirectorySnapshot:
        """Raises OSError if the directory itself cannot be listed."""
        entries = await aiofiles.os.listdir(path)
        snapshot: DirectorySnapshot = {}

        for name in entries:
            if name.startswith("."):
                continue

            try:
                item = await self._get_file_metadata(path, name)
            except OSError as e:
                # Fil forsvundet eller ulæselig under scan
                logging.debug(f"Failed to get file stats for {name}: {e}")
                continue

            if item is not None:
                snapshot[name] = item

        return snapshot

    @staticmethod
    def diff(previous: DirectorySnapshot, current: DirectorySnapshot) -> List[ChangeEvent]:
        events: List[ChangeEvent] = []

        for name, item in current.items():
            before = previous.get(name)
            if before is None:
                events.append(ChangeEvent(action=ChangeAction.CREATE, filename=name, owner=item.owner))
            elif item.modified_time > before.modified_time:
                events.append(ChangeEvent(action=ChangeAction.MODIFY, filename=name, owner=item.owner))

        for name, item in previous.items():
            if name not in current:
                events.append(ChangeEvent(action=ChangeAction.DELETE, filename=name, owner=item.owner))

        return events

    async def poll(self, path: str) -> List[ChangeEvent]:
        """Snapshot ``path`` and diff against the previous poll; the first poll only seeds."""
        current = await self.snapshot(path)
        previous = self._snapshots.get(path)
        self._snapshots[path] = current
        self.last_poll_at = datetime.now()

        if previous is None:
            logging.info(f"Change detector seeded for {path}: {len(current)} files")
            return []

        events = self.diff(previous, current)
        for event in events:
            log_file_change(event.owner, event.filename, event.action.value)
            self._recent_events.append(event)

        if events:
            logging.debug(f"{len(events)} changes detected in {path}")
        return events

    def has_snapshot(self, path: str) -> bool:
        return path in self._snapshots

    def forget(self, path: str) -> None:
        self._snapshots.pop(path, None)

    @property
    def recent_events(self) -> List[ChangeEvent]:
        return list(self._recent_events)

    async def _get_file_metadata(self, parent: str, name: str) -> Optional[ReportFile]:
        full_path = str(Path(parent) / name)
        stat_result = await aiofiles.os.stat(full_path)
        if stat.S_ISDIR(stat_result.st_mode):
            return None

        owner = user_name(stat_result.st_uid)
        department = None
        if self._report_extension in name:
            department = extract_department(name, self._report_extension)

        return ReportFile(
            filename=name,
            full_path=full_path,
            modified_time=stat_result.st_mtime,
            size_bytes=stat_result.st_size,
            owner=owner,
            department=department,
        )

