"""
Daemon Controller - the singleton control loop.

Every tick (default one second) the controller, in this order:

1. fires the protected transfer + backup cycle when the daily trigger minute
   is reached (once per minute) or a forced transfer is pending,
2. runs a backup-only protected cycle when a forced backup is pending,
3. drains the messaging channel and dispatches every complete record,
4. polls the upload directory for changes when the monitor interval elapsed.

A protected cycle locks the shared directories, hands the jobs to worker
processes, waits for their completion and always unlocks afterwards. Exit is
only checked between ticks, so a cycle is never aborted halfway.
"""

import asyncio
import functools
import logging
import os
import signal
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from report_agent.config import Settings
from report_agent.core.daemon_flags import DaemonFlags
from report_agent.core.exceptions import (
    LockError,
    LockReleaseError,
    MalformedMessageError,
    SpawnError,
)
from report_agent.jobs.backup import backup_dashboard
from report_agent.jobs.transfer import check_missing_reports, transfer_reports
from report_agent.jobs.urgent_change import make_urgent_change
from report_agent.models import (
    ChannelMessage,
    ControllerState,
    DaemonStatus,
    JobKind,
    MessageType,
    UrgentChangeRequest,
)
from report_agent.services.change_detector import ChangeDetector
from report_agent.services.daily_trigger import DailyTrigger
from report_agent.services.lock_coordinator import LockCoordinator
from report_agent.services.message_channel import MessageChannel
from report_agent.services.task_executor import Job, TaskExecutor, WorkerHandle


class DaemonController:
    def __init__(
        self,
        settings: Settings,
        flags: DaemonFlags,
        lock_coordinator: LockCoordinator,
        task_executor: TaskExecutor,
        channel: MessageChannel,
        change_detector: ChangeDetector,
        jobs: Optional[Dict[JobKind, Job]] = None,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._flags = flags
        self._lock_coordinator = lock_coordinator
        self._executor = task_executor
        self._channel = channel
        self._change_detector = change_detector
        self._clock = clock
        self._monotonic = monotonic

        self._jobs: Dict[JobKind, Job] = jobs or {
            JobKind.TRANSFER: functools.partial(transfer_reports, settings),
            JobKind.BACKUP: functools.partial(backup_dashboard, settings),
        }

        self._trigger = DailyTrigger(settings.transfer_hour, settings.transfer_minute)
        self._state = ControllerState.IDLE
        self._ticks = 0
        self._last_monitor: Optional[float] = None
        self._outstanding: List[WorkerHandle] = []
        self._started_at = self._clock()
        self._running = False

        logging.info(
            f"DaemonController initialized - transfer {self._trigger}, "
            f"monitoring {settings.upload_directory} every {settings.monitor_interval_seconds}s"
        )

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def trigger(self) -> DailyTrigger:
        return self._trigger

    def install_signal_handlers(
        self, loop: Optional[asyncio.AbstractEventLoop] = None, shutdown_signals: bool = True
    ) -> None:
        """Signals only flip flags; the loop acts on them at the next tick."""
        loop = loop or asyncio.get_running_loop()

        if shutdown_signals:
            loop.add_signal_handler(signal.SIGTERM, self._flags.request_exit)
            loop.add_signal_handler(signal.SIGINT, self._flags.request_exit)
        loop.add_signal_handler(signal.SIGUSR1, self._flags.request_backup)
        loop.add_signal_handler(signal.SIGUSR2, self._flags.request_transfer)
        # SIGHUP er reserveret til senere brug (reload)
        loop.add_signal_handler(signal.SIGHUP, lambda: None)

    def stop(self) -> None:
        self._flags.request_exit()
        logging.info("Daemon stop requested")

    async def run(self) -> None:
        if self._running:
            logging.warning("Daemon loop is already running")
            return

        self._running = True
        logging.info("Entering main daemon loop")

        try:
            while not self._flags.exit_requested:
                try:
                    await self.run_tick()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logging.exception(f"Error in daemon tick: {e}")

                if self._flags.exit_requested:
                    break
                await asyncio.sleep(self._settings.tick_interval_seconds)
        finally:
            self._running = False
            self._state = ControllerState.IDLE
            logging.info("Exiting main daemon loop")

    async def run_tick(self) -> None:
        now = self._clock()
        self._ticks += 1

        scheduled = self._trigger.should_fire(now)
        if scheduled or self._flags.force_transfer:
            try:
                await self._run_transfer_cycle()
            finally:
                self._flags.clear_transfer()

        if self._flags.force_backup:
            try:
                await self._run_backup_cycle()
            finally:
                self._flags.clear_backup()

        await self.drain_channel()
        await self._maybe_monitor()

    async def _run_transfer_cycle(self) -> None:
        logging.info("Starting scheduled file transfer and backup")
        if not self._lock():
            logging.error("Failed to lock directories, aborting transfer and backup")
            return

        deadline = self._monotonic() + self._settings.transfer_cycle_timeout_seconds
        try:
            self._state = ControllerState.RUNNING_JOBS
            transfer = await self._launch(JobKind.TRANSFER)
            if transfer is not None:
                await self._await_workers([transfer], self._remaining(deadline))

            await self._check_missing_reports()

            if self._is_outstanding(JobKind.TRANSFER):
                logging.error("Transfer is still running, skipping backup this cycle")
                return

            backup = await self._launch(JobKind.BACKUP)
            self._state = ControllerState.DRAINING
            if backup is not None:
                await self._await_workers([backup], self._remaining(deadline))
        finally:
            self._unlock()

    async def _run_backup_cycle(self) -> None:
        logging.info("Starting manual backup")
        if not self._lock():
            logging.error("Failed to lock directories, aborting manual backup")
            return

        deadline = self._monotonic() + self._settings.backup_cycle_timeout_seconds
        try:
            self._state = ControllerState.RUNNING_JOBS
            backup = await self._launch(JobKind.BACKUP)
            self._state = ControllerState.DRAINING
            if backup is not None:
                await self._await_workers([backup], self._remaining(deadline))
        finally:
            self._unlock()

    def _lock(self) -> bool:
        self._state = ControllerState.LOCKING
        try:
            self._lock_coordinator.acquire()
            return True
        except LockError as e:
            logging.error(f"Lock acquisition failed: {e}")
            self._state = ControllerState.IDLE
            return False

    def _unlock(self) -> None:
        self._state = ControllerState.UNLOCKING
        try:
            self._lock_coordinator.release()
        except LockReleaseError as e:
            logging.error(f"Failed to unlock directories cleanly: {e}")
        finally:
            self._state = ControllerState.IDLE

    async def _launch(self, kind: JobKind) -> Optional[WorkerHandle]:
        """
        Start ``kind`` in a worker; if that fails run it here instead.

        Returns None when there is no worker to await. A kind whose previous
        worker is still running is not started again, not even synchronously.
        """
        if self._is_outstanding(kind):
            logging.error(
                f"A {kind.value} worker from an earlier cycle is still running, "
                f"not starting another"
            )
            return None

        job = self._jobs[kind]
        try:
            handle = self._executor.run_as_process(job, kind)
        except SpawnError as e:
            logging.error(f"Failed to create {kind.value} process: {e}")
            await self._run_in_main_process(job, kind)
            return None

        self._outstanding.append(handle)
        return handle

    def _is_outstanding(self, kind: JobKind) -> bool:
        return any(h.kind is kind and not h.done for h in self._outstanding)

    async def _run_in_main_process(self, job: Job, kind: JobKind) -> None:
        try:
            ok = await asyncio.to_thread(job)
        except Exception as e:
            logging.exception(f"{kind.value.title()} raised in main process: {e}")
            ok = False

        if ok:
            logging.info(f"{kind.value.title()} completed successfully (in main process)")
        else:
            logging.error(f"{kind.value.title()} failed (in main process)")

    async def _await_workers(self, handles: List[WorkerHandle], timeout: float) -> None:
        pending = [h.future for h in handles if not h.done]
        if pending:
            _, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                logging.error(
                    f"{len(not_done)} worker(s) still running after the cycle timeout; "
                    f"unlocking anyway"
                )

        for handle in handles:
            if not handle.done:
                continue
            if handle.future.cancelled():
                logging.warning(f"{handle.kind.value.title()} worker was cancelled")
                continue

            error = handle.future.exception()
            if error is not None:
                logging.error(f"{handle.kind.value.title()} worker failed: {error!r}")
            else:
                logging.info(
                    f"{handle.kind.value.title()} worker finished with status "
                    f"{handle.future.result()}"
                )

        self._outstanding = [h for h in self._outstanding if not h.done]

    async def _check_missing_reports(self) -> None:
        try:
            await asyncio.to_thread(check_missing_reports, self._settings)
        except Exception as e:
            logging.error(f"Missing report check failed: {e}")

    def _remaining(self, deadline: float) -> float:
        return max(0.0, deadline - self._monotonic())

    async def drain_channel(self) -> int:
        """Dispatch every complete record currently in the channel."""
        handled = 0
        while True:
            try:
                message = self._channel.receive()
            except MalformedMessageError as e:
                logging.error(f"Discarding malformed channel record: {e}")
                continue
            except OSError as e:
                logging.error(f"Failed to read from channel: {e}")
                break

            if message is None:
                break

            handled += 1
            await self._dispatch(message)

        return handled

    async def _dispatch(self, message: ChannelMessage) -> None:
        pid = message.sender_pid

        if message.type is MessageType.BACKUP_COMPLETE:
            logging.info(f"Received backup completion message from PID {pid}: {message.payload}")
        elif message.type is MessageType.TRANSFER_COMPLETE:
            logging.info(f"Received transfer completion message from PID {pid}: {message.payload}")
        elif message.type is MessageType.BACKUP_START:
            logging.info(f"Backup requested by PID {pid}")
            self._flags.request_backup()
        elif message.type is MessageType.TRANSFER_START:
            logging.info(f"Transfer requested by PID {pid}")
            self._flags.request_transfer()
        elif message.type is MessageType.ERROR:
            if message.status == 0:
                logging.info(f"Status requested by PID {pid}: {self.status_summary()}")
            else:
                logging.error(f"Received error message from PID {pid}: {message.payload}")
        elif message.type is MessageType.URGENT_CHANGE:
            logging.info(f"Received urgent change request from PID {pid}")
            await self._handle_urgent_change(message.payload)

    async def _handle_urgent_change(self, payload: str) -> None:
        try:
            request = UrgentChangeRequest.parse(payload)
        except MalformedMessageError as e:
            logging.error(str(e))
            return

        try:
            ok = await asyncio.to_thread(make_urgent_change, self._settings, request)
        except Exception as e:
            logging.error(f"Urgent change raised: {e}")
            ok = False

        if ok:
            logging.info("Urgent change processed successfully")
        else:
            logging.error("Failed to process urgent change")

    async def _maybe_monitor(self) -> None:
        now = self._monotonic()
        if (
            self._last_monitor is not None
            and now - self._last_monitor < self._settings.monitor_interval_seconds
        ):
            return

        self._state = ControllerState.MONITORING
        try:
            await self._change_detector.poll(self._settings.upload_directory)
        except OSError as e:
            logging.error(f"Failed to scan {self._settings.upload_directory}: {e}")
        finally:
            self._last_monitor = now
            self._state = ControllerState.IDLE

    def status_summary(self) -> str:
        lock = "locked" if self._lock_coordinator.is_locked() else "unlocked"
        return (
            f"state={self._state.value}, directories {lock}, "
            f"outstanding jobs={len(self._outstanding)}, ticks={self._ticks}"
        )

    def get_status(self) -> DaemonStatus:
        return DaemonStatus(
            state=self._state,
            pid=os.getpid(),
            started_at=self._started_at,
            ticks=self._ticks,
            lock=self._lock_coordinator.read_token(),
            flags=self._flags.as_dict(),
            last_trigger_fired_at=self._trigger.last_fired_at,
            last_monitor_at=self._change_detector.last_poll_at,
            outstanding_jobs=[str(h) for h in self._outstanding if not h.done],
            recent_changes=self._change_detector.recent_events,
        )
