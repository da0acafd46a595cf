# report_agent/core/exceptions.py
from typing import List, Optional


class ReportAgentError(Exception):
    """Base class for all errors raised by the report agent."""


class LockError(ReportAgentError):
    """Raised when the shared directories cannot be locked or unlocked."""


class AlreadyLockedError(LockError):
    """Raised when the lock token already exists."""
    def __init__(self, lock_file: str, owner_pid: Optional[int] = None):
        self.lock_file = lock_file
        self.owner_pid = owner_pid
        owner = f" (owner pid {owner_pid})" if owner_pid is not None else ""
        super().__init__(f"Directories are already locked: {lock_file}{owner}")


class LockPermissionError(LockError):
    """Raised when permissions on a shared directory cannot be changed."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot change permissions on {path}: {reason}")


class LockReleaseError(LockError):
    """Raised after release when one or more restore steps failed."""
    def __init__(self, failures: List[str]):
        self.failures = failures
        super().__init__("Unlock incomplete: " + "; ".join(failures))


class SpawnError(ReportAgentError):
    """Raised when a job cannot be handed to a worker process."""


class ChannelError(ReportAgentError):
    """Raised on a transport failure of the messaging channel."""


class MalformedMessageError(ReportAgentError):
    """Raised when a channel record or its payload cannot be interpreted."""


class AlreadyRunningError(ReportAgentError):
    """Raised when another daemon instance owns the process identity file."""
    def __init__(self, pid: int, pid_file: str):
        self.pid = pid
        self.pid_file = pid_file
        super().__init__(
            f"Another instance of the daemon is already running (pid {pid}, {pid_file})"
        )
