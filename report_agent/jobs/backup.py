import logging
import os
import shutil
import stat
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from report_agent.config import Settings
from report_agent.utils.file_operations import copy_file

BACKUP_PREFIX = "backup_"
BACKUP_NAME_FORMAT = "backup_%Y-%m-%d_%H-%M-%S"


def backup_dashboard(settings: Settings, now: Optional[datetime] = None) -> bool:
    """Copy the dashboard into a new timestamped backup directory, then apply retention."""
    logging.info("Starting dashboard backup")

    backup_path = Path(settings.backup_directory) / (now or datetime.now()).strftime(
        BACKUP_NAME_FORMAT
    )
    try:
        backup_path.mkdir(mode=0o755)
    except OSError as e:
        logging.error(f"Failed to create backup directory {backup_path}: {e}")
        return False

    try:
        entries = list(os.scandir(settings.dashboard_directory))
    except OSError as e:
        logging.error(f"Failed to open dashboard directory: {e}")
        return False

    file_count = 0
    success_count = 0

    for entry in entries:
        try:
            if entry.is_dir():
                continue
        except OSError:
            continue

        file_count += 1
        try:
            copy_file(entry.path, str(backup_path / entry.name))
            success_count += 1
        except (OSError, ValueError) as e:
            logging.error(f"Failed to backup file {entry.name}: {e}")

    cleanup_old_backups(settings)

    if success_count == file_count:
        logging.info(f"Backup completed successfully: {success_count} files -> {backup_path}")
        return True

    logging.error(f"Backup partially completed: {success_count}/{file_count} files")
    return success_count > 0


def cleanup_old_backups(settings: Settings, now: Optional[float] = None) -> int:
    """Delete backup_* directories older than the maximum age. Returns how many were deleted."""
    logging.info("Cleaning up old backups")

    cutoff = (now if now is not None else time.time()) - settings.backup_max_age_days * 86400
    backup_count = 0
    deleted_count = 0

    try:
        entries = list(os.scandir(settings.backup_directory))
    except OSError as e:
        logging.error(f"Failed to open backup directory: {e}")
        return 0

    for entry in entries:
        if not entry.name.startswith(BACKUP_PREFIX):
            continue

        try:
            st = entry.stat(follow_symlinks=False)
        except OSError as e:
            logging.error(f"Failed to get stats for backup {entry.path}: {e}")
            continue

        if not stat.S_ISDIR(st.st_mode):
            continue

        backup_count += 1
        if st.st_mtime >= cutoff:
            continue

        logging.info(f"Deleting old backup: {entry.name}")
        try:
            shutil.rmtree(entry.path)
            deleted_count += 1
        except OSError as e:
            logging.error(f"Failed to delete old backup {entry.path}: {e}")

    logging.info(
        f"Backup cleanup completed: {backup_count} backups found, {deleted_count} deleted"
    )
    return deleted_count
