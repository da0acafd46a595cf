import threading
from typing import Dict


class DaemonFlags:
    """
    Signal-set / loop-cleared request flags for the daemon.

    The setters are the only operations allowed from signal handlers: they
    touch nothing but the underlying events. Reading and clearing happens
    from the controller loop. Repeated requests before a clear collapse into
    one pending request.
    """

    def __init__(self):
        self._exit = threading.Event()
        self._force_backup = threading.Event()
        self._force_transfer = threading.Event()

    def request_exit(self) -> None:
        self._exit.set()

    def request_backup(self) -> None:
        self._force_backup.set()

    def request_transfer(self) -> None:
        self._force_transfer.set()

    @property
    def exit_requested(self) -> bool:
        return self._exit.is_set()

    @property
    def force_backup(self) -> bool:
        return self._force_backup.is_set()

    @property
    def force_transfer(self) -> bool:
        return self._force_transfer.is_set()

    def clear_backup(self) -> None:
        self._force_backup.clear()

    def clear_transfer(self) -> None:
        self._force_transfer.clear()

    def as_dict(self) -> Dict[str, bool]:
        return {
            "exit_requested": self.exit_requested,
            "force_backup": self.force_backup,
            "force_transfer": self.force_transfer,
        }
