"""
Pytest configuration og shared fixtures.
"""

import os

import pytest

from report_agent.config import Settings
from report_agent.dependencies import reset_singletons


@pytest.fixture(autouse=True)
def clean_singletons():
    """Automatically reset singletons before hver test."""
    reset_singletons()
    yield
    reset_singletons()


@pytest.fixture
def settings(tmp_path):
    """Settings der peger alle mapper og runtime filer ind i tmp_path."""
    upload = tmp_path / "upload"
    dashboard = tmp_path / "reporting"
    backup = tmp_path / "backup"
    run_dir = tmp_path / "run"
    log_dir = tmp_path / "log"

    for directory in (upload, dashboard, backup, run_dir, log_dir):
        directory.mkdir()
    os.chmod(upload, 0o777)
    os.chmod(dashboard, 0o755)

    return Settings(
        upload_directory=str(upload),
        dashboard_directory=str(dashboard),
        backup_directory=str(backup),
        pid_file_path=str(run_dir / "daemon.pid"),
        lock_file_path=str(run_dir / "daemon.lock"),
        channel_path=str(run_dir / "daemon_pipe"),
        log_file_path=str(log_dir / "daemon.log"),
        change_log_path=str(log_dir / "changes.log"),
        tick_interval_seconds=0.01,
        transfer_cycle_timeout_seconds=5.0,
        backup_cycle_timeout_seconds=5.0,
    )


@pytest.fixture
def write_report():
    """Factory der skriver en gyldig rapport fil og returnerer stien."""

    def _write(path, department="Sales"):
        path.write_text(
            f'<?xml version="1.0"?>\n<report><department>{department}</department></report>\n',
            encoding="utf-8",
        )
        return path

    return _write
