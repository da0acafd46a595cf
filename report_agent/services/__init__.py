from .change_detector import ChangeDetector
from .daemon_controller import DaemonController
from .daily_trigger import DailyTrigger
from .lock_coordinator import LockCoordinator
from .message_channel import MessageChannel
from .process_identity import ProcessIdentity
from .task_executor import TaskExecutor, WorkerHandle

__all__ = [
    "ChangeDetector",
    "DaemonController",
    "DailyTrigger",
    "LockCoordinator",
    "MessageChannel",
    "ProcessIdentity",
    "TaskExecutor",
    "WorkerHandle",
]
