"""
Nightly report transfer from the upload directory to the dashboard directory.

Runs inside a worker process (or synchronously in the daemon as fallback),
so everything here is plain blocking code that takes the Settings it needs.
"""

import logging
import os
from pathlib import Path
from typing import List

from report_agent.config import Settings
from report_agent.logging_config import log_file_change
from report_agent.utils.file_operations import (
    extract_department,
    get_owner,
    is_on_time,
    is_valid_report,
    move_file,
)


def _is_report_name(name: str, extension: str) -> bool:
    return name.lower().endswith(extension)


def transfer_reports(settings: Settings) -> bool:
    """Move every valid report; False if any single file failed."""
    logging.info("Starting report transfer from upload to dashboard")

    upload_dir = Path(settings.upload_directory)
    dashboard_dir = Path(settings.dashboard_directory)

    try:
        entries = sorted(os.scandir(upload_dir), key=lambda e: e.name)
    except OSError as e:
        logging.error(f"Failed to open upload directory: {e}")
        return False

    result = True
    moved = 0

    for entry in entries:
        try:
            if entry.is_dir():
                continue
        except OSError:
            continue

        if not _is_report_name(entry.name, settings.report_extension):
            continue

        source = upload_dir / entry.name
        destination = dashboard_dir / entry.name

        if not is_valid_report(str(source), settings.report_extension):
            logging.error(f"Skipping invalid XML file: {entry.name}")
            continue

        if not is_on_time(
            str(source), settings.upload_deadline_hour, settings.upload_deadline_minute
        ):
            logging.info(
                f"File {entry.name} was uploaded after the deadline, "
                f"transferring anyway but logged as late"
            )

        logging.info(f"Moving file: {entry.name} to {dashboard_dir}")
        try:
            move_file(str(source), str(destination))
        except (OSError, ValueError) as e:
            logging.error(f"Failed to move file {entry.name} to dashboard: {e}")
            result = False
            continue

        moved += 1
        try:
            log_file_change(get_owner(str(destination)), entry.name, "transfer")
        except OSError as e:
            logging.warning(f"Cannot resolve owner of {destination}: {e}")

    logging.info(f"Report transfer finished: {moved} files moved, success={result}")
    return result


def check_missing_reports(settings: Settings) -> List[str]:
    """Departments without a report in the dashboard directory."""
    logging.info("Checking for missing department reports")

    expected = {dept.lower(): dept for dept in settings.departments}

    try:
        names = os.listdir(settings.dashboard_directory)
    except OSError as e:
        logging.error(f"Failed to open dashboard directory: {e}")
        # Kan ikke læse mappen - antag at alt mangler
        return list(settings.departments)

    found = set()
    for name in names:
        if not _is_report_name(name, settings.report_extension):
            continue
        if os.path.isdir(os.path.join(settings.dashboard_directory, name)):
            continue

        department = extract_department(name, settings.report_extension)
        if department is not None and department.lower() in expected:
            found.add(department.lower())

    missing = [dept for key, dept in expected.items() if key not in found]
    for dept in missing:
        logging.error(f"Missing report from department: {dept}")

    logging.info(f"Missing report check completed, {len(missing)} missing")
    return missing
