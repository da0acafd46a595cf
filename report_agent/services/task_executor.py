"""
Task Executor - runs protected job bodies in a worker process pool.

A worker executes one job, reports exactly one completion record on the
messaging channel and returns the job's status code. The handle returned to
the controller wraps the pool future, so the controller can await the
worker's completion before it unlocks the shared directories.
"""

import asyncio
import logging
import multiprocessing
import os
from concurrent.futures import Future, ProcessPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from report_agent.config import Settings
from report_agent.core.exceptions import ChannelError, SpawnError
from report_agent.logging_config import setup_worker_logging
from report_agent.models import (
    STATUS_FAILURE,
    STATUS_SUCCESS,
    ChannelMessage,
    JobKind,
    MessageType,
)
from report_agent.services.message_channel import MessageChannel

Job = Callable[[], bool]


def run_reporting_job(job: Job, completion_type: MessageType, channel_path: str) -> int:
    """Worker body: run ``job`` and report its status over the channel."""
    try:
        status = STATUS_SUCCESS if job() else STATUS_FAILURE
        text = f"{completion_type.name} with status {status}"
    except Exception as e:
        logging.exception(f"Job for {completion_type.name} raised: {e}")
        status = STATUS_FAILURE
        text = f"{completion_type.name} failed: {e}"

    message = ChannelMessage(
        type=completion_type, sender_pid=os.getpid(), status=status, payload=text
    )
    try:
        MessageChannel(channel_path).send(message)
    except ChannelError as e:
        logging.error(f"Failed to report completion: {e}")

    return status


@dataclass
class WorkerHandle:
    kind: JobKind
    future: "asyncio.Future[int]"
    submitted_at: datetime = field(default_factory=datetime.now)

    @property
    def done(self) -> bool:
        return self.future.done()

    def __str__(self) -> str:
        state = "done" if self.done else "running"
        return f"{self.kind.value} ({state}, submitted {self.submitted_at:%H:%M:%S})"


class TaskExecutor:
    def __init__(
        self,
        channel_path: str,
        max_workers: int = 2,
        settings: Optional[Settings] = None,
    ):
        self._channel_path = channel_path
        self._max_workers = max_workers
        self._settings = settings
        self._pool: Optional[ProcessPoolExecutor] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "TaskExecutor":
        return cls(
            channel_path=settings.channel_path,
            max_workers=settings.max_workers,
            settings=settings,
        )

    def run_as_process(self, job: Job, kind: JobKind) -> WorkerHandle:
        """Hand ``job`` to a worker. Raises SpawnError; the caller then runs it itself."""
        try:
            pool = self._get_pool()
            pool_future: Future = pool.submit(
                run_reporting_job, job, kind.completion_type, self._channel_path
            )
        except (RuntimeError, OSError) as e:
            # BrokenProcessPool er en RuntimeError
            self._discard_pool()
            raise SpawnError(f"Cannot start {kind.value} worker: {e}") from e

        handle = WorkerHandle(kind=kind, future=asyncio.wrap_future(pool_future))
        logging.info(f"Started {kind.value} worker")
        return handle

    def shutdown(self) -> None:
        """Stop accepting work; running workers are left to finish."""
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=False)
            self._pool = None
            logging.info("Worker pool shut down")

    def _get_pool(self) -> ProcessPoolExecutor:
        if self._pool is None:
            initializer = None
            initargs = ()
            if self._settings is not None:
                initializer = setup_worker_logging
                initargs = (self._settings,)

            self._pool = ProcessPoolExecutor(
                max_workers=self._max_workers,
                mp_context=multiprocessing.get_context("spawn"),
                initializer=initializer,
                initargs=initargs,
            )
            logging.info(f"Worker pool created with {self._max_workers} workers")
        return self._pool

    def _discard_pool(self) -> None:
        if self._pool is not None:
            try:
                self._pool.shutdown(wait=False, cancel_futures=True)
            except RuntimeError:
                pass
            self._pool = None
