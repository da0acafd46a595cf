"""
Tests for daemon startup and shutdown outside the control loop.
"""

import os
import stat

import pytest

from report_agent import dependencies
from report_agent.core.exceptions import AlreadyRunningError
from report_agent.daemon import cleanup_daemon, initialize_daemon
from report_agent.services.lock_coordinator import LockCoordinator


@pytest.fixture
def use_settings(settings, monkeypatch):
    monkeypatch.setattr(dependencies, "get_settings", lambda: settings)
    return settings


def mode_of(path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


class TestDaemonLifecycle:
    def test_initialize_and_cleanup(self, use_settings, tmp_path):
        settings = use_settings
        os.rmdir(settings.backup_directory)
        os.chmod(settings.upload_directory, 0o700)

        initialize_daemon(settings)
        try:
            assert os.path.isdir(settings.backup_directory)
            assert stat.S_ISFIFO(os.stat(settings.channel_path).st_mode)
            assert dependencies.get_process_identity().read_pid() == os.getpid()
            assert mode_of(settings.upload_directory) == 0o777
            assert mode_of(settings.dashboard_directory) == 0o755
        finally:
            cleanup_daemon()

        assert not os.path.exists(settings.channel_path)
        assert not os.path.exists(settings.pid_file_path)

    def test_second_instance_is_refused(self, use_settings):
        settings = use_settings
        with open(settings.pid_file_path, "w") as f:
            f.write(f"{os.getppid()}\n")

        with pytest.raises(AlreadyRunningError):
            initialize_daemon(settings)

        assert not os.path.exists(settings.channel_path)

    def test_stale_lock_is_recovered(self, use_settings, monkeypatch):
        settings = use_settings
        LockCoordinator.from_settings(settings).acquire()
        monkeypatch.setattr(
            "report_agent.services.lock_coordinator.process_exists", lambda pid: False
        )

        initialize_daemon(settings)
        try:
            assert not os.path.exists(settings.lock_file_path)
            assert mode_of(settings.upload_directory) == 0o777
        finally:
            cleanup_daemon()
