import struct
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .core.exceptions import MalformedMessageError

# Wire layout: { int32 type; int32 sender_pid; int32 status; char message[2048]; }
MAX_PAYLOAD_BYTES = 2048
RECORD_FORMAT = f"=iii{MAX_PAYLOAD_BYTES}s"
RECORD_SIZE = struct.calcsize(RECORD_FORMAT)

STATUS_SUCCESS = 0
STATUS_FAILURE = -1


class MessageType(IntEnum):
    """Record types on the messaging channel."""

    BACKUP_START = 1  # Ekstern anmodning om backup
    BACKUP_COMPLETE = 2  # Worker har afsluttet backup
    TRANSFER_START = 3  # Ekstern anmodning om transfer
    TRANSFER_COMPLETE = 4  # Worker har afsluttet transfer
    ERROR = 5  # Fejl, eller status-forespørgsel når status == 0
    URGENT_CHANGE = 6  # "filename|username|content"


class ControllerState(str, Enum):
    """
    Daemon controller tilstande.

    Protected path: Idle -> Locking -> RunningJobs -> Draining -> Unlocking -> Idle
    Monitoring: Idle -> Monitoring -> Idle
    """

    IDLE = "Idle"
    LOCKING = "Locking"
    RUNNING_JOBS = "RunningJobs"
    DRAINING = "Draining"
    UNLOCKING = "Unlocking"
    MONITORING = "Monitoring"


class ChangeAction(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class JobKind(str, Enum):
    TRANSFER = "transfer"
    BACKUP = "backup"

    @property
    def completion_type(self) -> MessageType:
        if self is JobKind.TRANSFER:
            return MessageType.TRANSFER_COMPLETE
        return MessageType.BACKUP_COMPLETE


@dataclass
class ChannelMessage:
    """One fixed-size record on the messaging channel."""

    type: MessageType
    sender_pid: int
    status: int = STATUS_SUCCESS
    payload: str = ""

    def pack(self) -> bytes:
        # Plads til NUL terminator ligesom et C char-array
        encoded = self.payload.encode("utf-8")[: MAX_PAYLOAD_BYTES - 1]
        return struct.pack(
            RECORD_FORMAT, int(self.type), self.sender_pid, self.status, encoded
        )

    @classmethod
    def unpack(cls, record: bytes) -> "ChannelMessage":
        if len(record) != RECORD_SIZE:
            raise MalformedMessageError(
                f"Record has {len(record)} bytes, expected {RECORD_SIZE}"
            )

        raw_type, sender_pid, status, raw_payload = struct.unpack(RECORD_FORMAT, record)
        try:
            message_type = MessageType(raw_type)
        except ValueError:
            raise MalformedMessageError(
                f"Unknown message type {raw_type} from PID {sender_pid}"
            ) from None

        payload = raw_payload.split(b"\0", 1)[0].decode("utf-8", errors="replace")
        return cls(type=message_type, sender_pid=sender_pid, status=status, payload=payload)

    def __str__(self) -> str:
        return (
            f"ChannelMessage(type={self.type.name}, "
            f"pid={self.sender_pid}, status={self.status})"
        )


@dataclass(frozen=True)
class UrgentChangeRequest:
    filename: str
    username: str
    content: str

    @classmethod
    def parse(cls, payload: str) -> "UrgentChangeRequest":
        """Parse ``filename|username|content``; content may itself contain ``|``."""
        filename, sep, rest = payload.partition("|")
        if not sep:
            raise MalformedMessageError(
                "Invalid urgent change message format: missing separator"
            )

        username, sep, content = rest.partition("|")
        if not sep:
            raise MalformedMessageError(
                "Invalid urgent change message format: missing content"
            )

        if not filename or filename in (".", "..") or "/" in filename:
            raise MalformedMessageError(
                f"Invalid urgent change filename: {filename!r}"
            )

        return cls(filename=filename, username=username, content=content)


class ReportFile(BaseModel):
    """Metadata for one entry in a directory snapshot."""

    filename: str = Field(..., description="File name, the snapshot key")
    full_path: str = Field(..., description="Absolute path to the file")
    modified_time: float = Field(..., description="st_mtime in seconds")
    size_bytes: int = Field(default=0, description="File size in bytes")
    owner: str = Field(default="", description="Owning user name, or uid")
    department: Optional[str] = Field(
        default=None, description="Department derived from report file name"
    )


DirectorySnapshot = Dict[str, ReportFile]


class ChangeEvent(BaseModel):
    action: ChangeAction
    filename: str
    owner: str = ""
    detected_at: datetime = Field(default_factory=datetime.now)


class LockInfo(BaseModel):
    locked: bool
    owner_pid: Optional[int] = None
    created_at: Optional[datetime] = None


class DaemonStatus(BaseModel):
    """Snapshot of the controller for the status API."""

    state: ControllerState
    pid: int
    started_at: datetime
    ticks: int = 0
    lock: LockInfo
    flags: Dict[str, bool]
    last_trigger_fired_at: Optional[datetime] = None
    last_monitor_at: Optional[datetime] = None
    outstanding_jobs: List[str] = Field(default_factory=list)
    recent_changes: List[ChangeEvent] = Field(default_factory=list)
