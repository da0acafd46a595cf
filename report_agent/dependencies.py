from functools import lru_cache
from typing import Any, Dict

from .config import Settings
from .core.daemon_flags import DaemonFlags
from .services.change_detector import ChangeDetector
from .services.daemon_controller import DaemonController
from .services.lock_coordinator import LockCoordinator
from .services.message_channel import MessageChannel
from .services.process_identity import ProcessIdentity
from .services.task_executor import TaskExecutor

# Global singleton instances
_singletons: Dict[str, Any] = {}


@lru_cache
def get_settings() -> Settings:
    """Hent Settings singleton instance."""
    return Settings()


def get_daemon_flags() -> DaemonFlags:
    if "daemon_flags" not in _singletons:
        _singletons["daemon_flags"] = DaemonFlags()
    return _singletons["daemon_flags"]


def get_process_identity() -> ProcessIdentity:
    if "process_identity" not in _singletons:
        _singletons["process_identity"] = ProcessIdentity(get_settings().pid_file_path)
    return _singletons["process_identity"]


def get_lock_coordinator() -> LockCoordinator:
    if "lock_coordinator" not in _singletons:
        _singletons["lock_coordinator"] = LockCoordinator.from_settings(get_settings())
    return _singletons["lock_coordinator"]


def get_message_channel() -> MessageChannel:
    if "message_channel" not in _singletons:
        _singletons["message_channel"] = MessageChannel(get_settings().channel_path)
    return _singletons["message_channel"]


def get_change_detector() -> ChangeDetector:
    if "change_detector" not in _singletons:
        _singletons["change_detector"] = ChangeDetector(
            report_extension=get_settings().report_extension
        )
    return _singletons["change_detector"]


def get_task_executor() -> TaskExecutor:
    if "task_executor" not in _singletons:
        _singletons["task_executor"] = TaskExecutor.from_settings(get_settings())
    return _singletons["task_executor"]


def get_daemon_controller() -> DaemonController:
    if "daemon_controller" not in _singletons:
        _singletons["daemon_controller"] = DaemonController(
            settings=get_settings(),
            flags=get_daemon_flags(),
            lock_coordinator=get_lock_coordinator(),
            task_executor=get_task_executor(),
            channel=get_message_channel(),
            change_detector=get_change_detector(),
        )
    return _singletons["daemon_controller"]


def reset_singletons() -> None:
    global _singletons
    _singletons.clear()
    get_settings.cache_clear()
