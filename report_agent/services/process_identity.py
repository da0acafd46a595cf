import logging
import os
from pathlib import Path
from typing import Optional

from report_agent.core.exceptions import AlreadyRunningError
from report_agent.utils.processes import process_exists


class ProcessIdentity:
    """PID file based singleton check for the daemon."""

    def __init__(self, pid_file: str):
        self._pid_file = Path(pid_file)

    @property
    def pid_file(self) -> str:
        return str(self._pid_file)

    def read_pid(self) -> Optional[int]:
        try:
            content = self._pid_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None

        try:
            return int(content.split()[0])
        except (IndexError, ValueError):
            logging.warning(f"PID file {self._pid_file} has unreadable content: {content!r}")
            return None

    def check_singleton(self) -> None:
        pid = self.read_pid()
        if pid is None or pid == os.getpid():
            return

        if process_exists(pid):
            raise AlreadyRunningError(pid, str(self._pid_file))

        logging.info(f"Ignoring stale PID file {self._pid_file} (pid {pid} is gone)")

    def claim(self) -> None:
        """Write our PID. Raises OSError; a daemon that cannot claim must not start."""
        self.check_singleton()
        self._pid_file.parent.mkdir(parents=True, exist_ok=True)
        self._pid_file.write_text(f"{os.getpid()}\n", encoding="utf-8")
        logging.info(f"PID file created: {self._pid_file} (pid {os.getpid()})")

    def release(self) -> None:
        if self.read_pid() != os.getpid():
            logging.warning(f"PID file {self._pid_file} is not ours, leaving it in place")
            return

        try:
            self._pid_file.unlink()
        except FileNotFoundError:
            pass
        logging.info(f"PID file removed: {self._pid_file}")
