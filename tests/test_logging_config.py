import logging
import logging.handlers

import pytest
from rich.logging import RichHandler

from report_agent.logging_config import (
    CHANGE_LOGGER_NAME,
    log_file_change,
    setup_logging,
    setup_worker_logging,
)


@pytest.fixture(autouse=True)
def restore_logging():
    """Gem og genskab root og change logger så andre tests ikke påvirkes."""
    root = logging.getLogger()
    change = logging.getLogger(CHANGE_LOGGER_NAME)
    level, propagate = root.level, change.propagate
    yield
    for logger in (root, change):
        for handler in logger.handlers[:]:
            if isinstance(handler, (RichHandler, logging.handlers.RotatingFileHandler)):
                logger.removeHandler(handler)
                handler.close()
    root.setLevel(level)
    change.propagate = propagate


class TestLoggingConfig:
    def test_setup_logging_installs_console_and_file(self, settings, tmp_path):
        setup_logging(settings)

        handlers = logging.getLogger().handlers
        assert any(isinstance(h, RichHandler) for h in handlers)
        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in handlers)

        logging.info("operation log line")
        for h in handlers:
            h.flush()
        assert "operation log line" in (tmp_path / "log" / "daemon.log").read_text()

    def test_change_log_is_separate(self, settings, tmp_path):
        setup_worker_logging(settings)

        log_file_change("alice", "Sales.xml", "create")
        for h in logging.getLogger(CHANGE_LOGGER_NAME).handlers:
            h.flush()

        changes = (tmp_path / "log" / "changes.log").read_text()
        assert "User: alice, File: Sales.xml, Action: create" in changes
        assert "Sales.xml" not in (tmp_path / "log" / "daemon.log").read_text()

    def test_rotation_settings(self, settings):
        setup_worker_logging(settings)

        handler = logging.getLogger().handlers[0]
        assert handler.maxBytes == settings.log_max_bytes
        assert handler.backupCount == settings.log_backup_count
