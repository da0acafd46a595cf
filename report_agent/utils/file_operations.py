import logging
import os
import pwd
import shutil
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

REPORT_HEAD_BYTES = 4096


def ensure_directory(path: str) -> None:
    target = Path(path)
    if target.exists():
        if not target.is_dir():
            raise NotADirectoryError(f"{path} exists but is not a directory")
        return

    target.mkdir(parents=True, mode=0o755)
    logging.info(f"Created directory: {path}")


def validate_source_file(source_path: Path) -> None:
    if not source_path.exists():
        raise FileNotFoundError(f"Source file does not exist: {source_path}")

    if not source_path.is_file():
        raise ValueError(f"Source path is not a regular file: {source_path}")


def validate_file_copy_integrity(source_path: Path, dest_path: Path) -> None:
    source_size = source_path.stat().st_size
    dest_size = dest_path.stat().st_size

    if source_size != dest_size:
        raise ValueError(f"File size mismatch: source={source_size}, dest={dest_size}")


def copy_file(source: str, destination: str) -> None:
    """Byte copy of ``source`` to ``destination``, overwriting it."""
    source_path = Path(source)
    validate_source_file(source_path)

    shutil.copyfile(source_path, destination)
    validate_file_copy_integrity(source_path, Path(destination))


def move_file(source: str, destination: str) -> None:
    """Rename, falling back to copy + delete across filesystems."""
    try:
        os.rename(source, destination)
        return
    except OSError as e:
        logging.debug(f"Rename {source} -> {destination} failed ({e}), copying instead")

    copy_file(source, destination)
    os.unlink(source)


def is_valid_report(path: str, extension: str = ".xml") -> bool:
    """Cheap structural check: XML prolog plus an opening and closing <report> tag."""
    if not path.lower().endswith(extension):
        logging.error(f"Invalid file extension for report: {path}")
        return False

    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            head = f.read(REPORT_HEAD_BYTES)
    except OSError as e:
        logging.error(f"Failed to open file for XML validation: {path}: {e}")
        return False

    has_xml_header = "<?xml" in head
    has_report_tag = "<report>" in head
    has_closing_report_tag = "</report>" in head

    if not (has_xml_header and has_report_tag and has_closing_report_tag):
        logging.error(
            f"XML validation failed for {path}: header={has_xml_header}, "
            f"opening_tag={has_report_tag}, closing_tag={has_closing_report_tag}"
        )
        return False

    return True


def most_recent_deadline(now: datetime, hour: int, minute: int) -> datetime:
    deadline = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if deadline > now:
        deadline -= timedelta(days=1)
    return deadline


def is_on_time(
    path: str, deadline_hour: int, deadline_minute: int, now: Optional[datetime] = None
) -> bool:
    """True if the file was last modified at or before the most recent upload deadline."""
    try:
        modified = datetime.fromtimestamp(os.stat(path).st_mtime)
    except OSError as e:
        logging.error(f"Failed to get file stats for deadline check: {path}: {e}")
        return False

    deadline = most_recent_deadline(now or datetime.now(), deadline_hour, deadline_minute)
    if modified > deadline:
        logging.warning(
            f"File {path} was uploaded late at {modified:%Y-%m-%d %H:%M:%S} "
            f"(deadline: {deadline_hour:02d}:{deadline_minute:02d})"
        )
        return False

    return True


def extract_department(filename: str, extension: str = ".xml") -> Optional[str]:
    """``Sales_2024-01-31.xml`` -> ``Sales``; ``Sales.xml`` -> ``Sales``."""
    end = filename.find("_")
    if end == -1:
        end = filename.find(extension)
        if end == -1:
            return None

    return filename[:end]


def user_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


def get_owner(path: str) -> str:
    return user_name(os.stat(path).st_uid)
