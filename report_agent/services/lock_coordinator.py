"""
Lock Coordinator - exclusive access to the upload and dashboard directories.

A lock token file marks the locked state; creating it with O_EXCL is the only
synchronization point, so two acquirers can never both succeed. While locked,
both directories have every permission revoked so uploaders (and anything
else not running as root) are kept out until release.

Acquire is all-or-nothing: every failed step undoes the steps before it.
"""

import logging
import os
import stat
from datetime import datetime
from typing import List, Optional

from report_agent.config import Settings
from report_agent.core.exceptions import (
    AlreadyLockedError,
    LockPermissionError,
    LockReleaseError,
)
from report_agent.models import LockInfo
from report_agent.utils.processes import process_exists

LOCKED_PERMISSIONS = 0o000


class LockCoordinator:
    def __init__(
        self,
        lock_file: str,
        upload_directory: str,
        dashboard_directory: str,
        upload_permissions: int = 0o777,
        dashboard_permissions: int = 0o755,
    ):
        self._lock_file = lock_file
        self._upload_directory = upload_directory
        self._dashboard_directory = dashboard_directory
        self._upload_permissions = upload_permissions
        self._dashboard_permissions = dashboard_permissions

    @classmethod
    def from_settings(cls, settings: Settings) -> "LockCoordinator":
        return cls(
            lock_file=settings.lock_file_path,
            upload_directory=settings.upload_directory,
            dashboard_directory=settings.dashboard_directory,
            upload_permissions=settings.upload_permissions,
            dashboard_permissions=settings.dashboard_permissions,
        )

    @property
    def lock_file(self) -> str:
        return self._lock_file

    def acquire(self) -> None:
        logging.info("Locking directories for backup/transfer")

        self._create_token()

        try:
            upload_mode = self._revoke(self._upload_directory)
        except LockPermissionError:
            self._remove_token()
            raise

        try:
            self._revoke(self._dashboard_directory)
        except LockPermissionError:
            logging.error("Failed to lock dashboard directory, rolling back upload lock")
            self._restore_mode(self._upload_directory, upload_mode)
            self._remove_token()
            raise

        logging.info(f"Directories locked by PID {os.getpid()}")

    def release(self) -> None:
        logging.info("Unlocking directories after backup/transfer")
        failures: List[str] = []

        for path, mode in (
            (self._upload_directory, self._upload_permissions),
            (self._dashboard_directory, self._dashboard_permissions),
        ):
            try:
                os.chmod(path, mode)
            except OSError as e:
                logging.error(f"Failed to unlock {path}: {e}")
                failures.append(f"{path}: {e}")

        try:
            self._remove_token()
        except OSError as e:
            logging.error(f"Failed to remove lock file {self._lock_file}: {e}")
            failures.append(f"{self._lock_file}: {e}")

        if failures:
            raise LockReleaseError(failures)

    def is_locked(self) -> bool:
        return os.path.exists(self._lock_file)

    def read_token(self) -> LockInfo:
        try:
            with open(self._lock_file, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except FileNotFoundError:
            return LockInfo(locked=False)
        except OSError as e:
            logging.warning(f"Cannot read lock file {self._lock_file}: {e}")
            return LockInfo(locked=True)

        owner_pid: Optional[int] = None
        created_at: Optional[datetime] = None
        try:
            owner_pid = int(lines[0])
            created_at = datetime.fromisoformat(lines[1])
        except (IndexError, ValueError):
            logging.debug(f"Lock file {self._lock_file} has no complete owner record")

        return LockInfo(locked=True, owner_pid=owner_pid, created_at=created_at)

    def recover_stale(self) -> bool:
        """Release a lock left behind by a process that no longer exists."""
        info = self.read_token()
        if not info.locked:
            return False

        if info.owner_pid is not None and process_exists(info.owner_pid):
            logging.info(
                f"Lock file {self._lock_file} is held by live process {info.owner_pid}"
            )
            return False

        logging.warning(
            f"Found stale lock file {self._lock_file} "
            f"(owner pid {info.owner_pid}, created {info.created_at}), unlocking"
        )
        self.release()
        return True

    def _create_token(self) -> None:
        try:
            fd = os.open(self._lock_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            owner_pid = self.read_token().owner_pid
            logging.error(
                f"Lock file already exists, directories may already be locked "
                f"(owner pid {owner_pid})"
            )
            raise AlreadyLockedError(self._lock_file, owner_pid) from None
        except OSError as e:
            logging.error(f"Failed to create lock file {self._lock_file}: {e}")
            raise LockPermissionError(self._lock_file, str(e)) from e

        token = f"{os.getpid()}\n{datetime.now().isoformat()}\n".encode("utf-8")
        try:
            os.write(fd, token)
        except OSError as e:
            logging.error(f"Failed to write lock file {self._lock_file}: {e}")
            os.close(fd)
            self._remove_token()
            raise LockPermissionError(self._lock_file, str(e)) from e
        os.close(fd)

    def _remove_token(self) -> None:
        try:
            os.unlink(self._lock_file)
        except FileNotFoundError:
            pass

    def _revoke(self, path: str) -> int:
        """Revoke all permissions on ``path``; returns the previous mode."""
        try:
            previous = stat.S_IMODE(os.stat(path).st_mode)
            os.chmod(path, LOCKED_PERMISSIONS)
        except OSError as e:
            logging.error(f"Failed to lock directory {path}: {e}")
            raise LockPermissionError(path, str(e)) from e
        return previous

    def _restore_mode(self, path: str, mode: int) -> None:
        try:
            os.chmod(path, mode)
        except OSError as e:
            logging.error(f"Failed to restore permissions {oct(mode)} on {path}: {e}")
