import logging
import os
import stat
from pathlib import Path

from report_agent.config import Settings
from report_agent.logging_config import log_file_change
from report_agent.models import UrgentChangeRequest


def make_urgent_change(settings: Settings, request: UrgentChangeRequest) -> bool:
    """
    Overwrite an existing dashboard file outside the nightly cycle.

    The dashboard directory and the file are opened up only for the duration
    of the write; both get their previous modes back on every path.
    """
    logging.info(
        f"Attempting urgent change to file {request.filename} by user {request.username}"
    )

    dashboard_dir = Path(settings.dashboard_directory)
    target = dashboard_dir / request.filename

    try:
        dir_mode = stat.S_IMODE(os.stat(dashboard_dir).st_mode)
    except OSError as e:
        logging.error(f"Cannot read dashboard directory {dashboard_dir}: {e}")
        return False

    try:
        file_mode = stat.S_IMODE(os.stat(target).st_mode)
    except OSError:
        logging.error(f"File not found for urgent change: {target}")
        return False

    if not target.is_file():
        logging.error(f"Urgent change target is not a regular file: {target}")
        return False

    try:
        os.chmod(dashboard_dir, 0o777)
        os.chmod(target, 0o666)
        with open(target, "w", encoding="utf-8") as f:
            f.write(request.content)
    except OSError as e:
        logging.error(f"Failed to write content for urgent change: {e}")
        return False
    finally:
        _restore(target, file_mode)
        _restore(dashboard_dir, dir_mode)

    log_file_change(request.username, request.filename, "urgent_change")
    logging.info(
        f"Urgent change to file {request.filename} by user {request.username} "
        f"completed successfully"
    )
    return True


def _restore(path: Path, mode: int) -> None:
    try:
        os.chmod(path, mode)
    except OSError as e:
        logging.error(f"Failed to restore permissions {oct(mode)} on {path}: {e}")
