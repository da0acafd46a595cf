"""
Messaging Channel - one FIFO endpoint from workers and external callers to the daemon.

Every record is RECORD_SIZE bytes, well below PIPE_BUF, so a single write is
atomic: readers never see interleaved halves of two records. The daemon is
the only reader and never blocks on it.
"""

import logging
import os
import stat
from typing import Optional

from report_agent.core.exceptions import ChannelError
from report_agent.models import RECORD_SIZE, ChannelMessage


class MessageChannel:
    def __init__(self, path: str):
        self._path = path
        self._read_fd: Optional[int] = None
        self._buffer = b""

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._read_fd is not None

    def open(self) -> None:
        """Create the endpoint and open its read end. Must run before any worker starts."""
        if self._read_fd is not None:
            return

        self._ensure_fifo()
        self._read_fd = os.open(self._path, os.O_RDONLY | os.O_NONBLOCK)
        self._buffer = b""
        logging.info(f"Messaging channel ready: {self._path}")

    def close(self) -> None:
        if self._read_fd is not None:
            os.close(self._read_fd)
            self._read_fd = None
        self._buffer = b""

        try:
            os.unlink(self._path)
        except FileNotFoundError:
            pass
        logging.info(f"Messaging channel removed: {self._path}")

    def send(self, message: ChannelMessage) -> None:
        record = message.pack()

        try:
            fd = os.open(self._path, os.O_WRONLY | os.O_NONBLOCK)
        except OSError as e:
            # ENXIO: ingen læser, ENOENT: daemon kører ikke
            raise ChannelError(f"Cannot open channel {self._path}: {e}") from e

        try:
            written = os.write(fd, record)
        except OSError as e:
            raise ChannelError(f"Failed to write to channel {self._path}: {e}") from e
        finally:
            os.close(fd)

        if written != len(record):
            raise ChannelError(
                f"Short write on channel {self._path}: {written}/{len(record)} bytes"
            )

    def receive(self) -> Optional[ChannelMessage]:
        """Next complete record, or None. Raises MalformedMessageError for a bad record."""
        if self._read_fd is None:
            return None

        missing = RECORD_SIZE - len(self._buffer)
        try:
            chunk = os.read(self._read_fd, missing)
        except BlockingIOError:
            return None

        if not chunk:
            # Ingen writers lige nu
            return None

        self._buffer += chunk
        if len(self._buffer) < RECORD_SIZE:
            return None

        record, self._buffer = self._buffer, b""
        return ChannelMessage.unpack(record)

    def _ensure_fifo(self) -> None:
        try:
            mode = os.stat(self._path).st_mode
        except FileNotFoundError:
            mode = None

        if mode is not None and not stat.S_ISFIFO(mode):
            logging.warning(f"Replacing non-FIFO file at channel path {self._path}")
            os.unlink(self._path)
            mode = None

        if mode is None:
            os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
            os.mkfifo(self._path, 0o666)
            # Eksterne klienter skal kunne skrive uanset umask
            os.chmod(self._path, 0o666)
