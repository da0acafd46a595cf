"""
Daemon startup and shutdown, outside the control loop.

``initialize_daemon`` raises on anything that must stop the process from
starting (another instance running, PID file or channel not writable);
the entry point turns that into exit code 1.
"""

import logging
import os

from .config import Settings
from .core.exceptions import LockError
from .dependencies import (
    get_lock_coordinator,
    get_message_channel,
    get_process_identity,
    get_task_executor,
)
from .utils.file_operations import ensure_directory


def initialize_daemon(settings: Settings) -> None:
    get_process_identity().claim()

    for directory in settings.managed_directories:
        try:
            ensure_directory(directory)
        except OSError as e:
            logging.error(f"Failed to create directory {directory}: {e}")

    # Kanalen skal eksistere før første worker startes
    get_message_channel().open()

    lock_coordinator = get_lock_coordinator()
    try:
        lock_coordinator.recover_stale()
    except LockError as e:
        logging.error(f"Failed to recover stale lock: {e}")

    if not lock_coordinator.is_locked():
        _set_permissions(settings.upload_directory, settings.upload_permissions)
        _set_permissions(settings.dashboard_directory, settings.dashboard_permissions)

    logging.info("Daemon initialization complete")


def cleanup_daemon() -> None:
    get_task_executor().shutdown()

    try:
        get_message_channel().close()
    except OSError as e:
        logging.error(f"Failed to remove messaging channel: {e}")

    try:
        get_process_identity().release()
    except OSError as e:
        logging.error(f"Failed to remove PID file: {e}")

    logging.info("Daemon shutdown complete")


def _set_permissions(path: str, mode: int) -> None:
    try:
        os.chmod(path, mode)
    except OSError as e:
        logging.error(f"Failed to set permissions {oct(mode)} on {path}: {e}")
