"""Worker loop that reserves jobs and hands them to a handler.

Provides a worker that:
- Reserves jobs from any QueueBackend
- Acknowledges a job when its handler returns a truthy value
- Leaves failed jobs to their lease, so a later sweep re-delivers them
- Backs off when the store is unavailable
- Supports graceful shutdown

Example:
    async def handle(job: ReservedJob) -> bool:
        await send_email(job.payload)
        return True

    worker = QueueWorker(queue, handle)

    # Run until SIGTERM/SIGINT
    await worker.run()

    # Or drain the queue once and return
    await QueueWorker(queue, handle, WorkerConfig(repeat=False)).run()
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from types import TracebackType
from typing import Awaitable, Callable

from laneq.errors import StoreUnavailable
from laneq.observability.logging import LogContext
from laneq.queue import QueueBackend, ReservedJob

logger = logging.getLogger(__name__)

# Returns truthy to acknowledge the job
JobHandler = Callable[[ReservedJob], Awaitable[bool | None]]


@dataclass
class WorkerConfig:
    """Worker configuration."""

    # Worker identification
    name: str = "default"

    # Seconds each reserve call may block (0 polls each lane once)
    timeout: float = 3.0

    # Keep listening once the queue is empty
    repeat: bool = True

    # Pause between polls when timeout is 0 and nothing was found
    idle_sleep: float = 1.0

    # Pause after a store failure
    error_backoff: float = 1.0

    # Install SIGTERM/SIGINT handlers in run()
    handle_signals: bool = True


class QueueWorker:
    """Reserve-handle-acknowledge loop.

    The worker depends only on the QueueBackend operations, so any engine
    (or a test double) can drive it.
    """

    def __init__(
        self,
        queue: QueueBackend,
        handler: JobHandler,
        config: WorkerConfig | None = None,
        channel: str = "",
    ) -> None:
        self.queue = queue
        self.handler = handler
        self.config = config or WorkerConfig()
        self.channel = channel or getattr(queue, "channel", "")
        self._running = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[int] | None = None
        self.handled = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Ask the loop to finish after the current job.

        A stopped worker does not start again.
        """
        if self._running:
            logger.info(f"Stopping worker: {self.config.name}")
        self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._signal_handler)
            except (NotImplementedError, RuntimeError):
                # Not supported off the main thread or on some platforms
                logger.debug(f"Cannot install handler for {sig.name}")

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass

    def _signal_handler(self) -> None:
        """Handle shutdown signals."""
        logger.info("Received shutdown signal")
        self.stop()

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early if the worker is stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run(self) -> int:
        """Run until stopped, or until the queue is empty if not repeating.

        Returns:
            Number of jobs handled
        """
        self._running = True
        if self.config.handle_signals:
            self._install_signal_handlers()

        logger.info(f"Worker started: {self.config.name}")
        processed = 0

        with LogContext(channel=self.channel, worker=self.config.name):
            try:
                while not self._stop_event.is_set():
                    try:
                        job = await self.queue.reserve(self.config.timeout)
                    except StoreUnavailable as e:
                        logger.error(f"Store unavailable, retrying: {e}")
                        await self._sleep(self.config.error_backoff)
                        continue

                    if job is None:
                        if not self.config.repeat:
                            break
                        if not self.config.timeout:
                            await self._sleep(self.config.idle_sleep)
                        continue

                    await self._handle(job)
                    processed += 1
            finally:
                self._running = False
                if self.config.handle_signals:
                    self._remove_signal_handlers()

        logger.info(f"Worker stopped: {self.config.name} ({processed} job(s))")
        return processed

    async def run_once(self) -> bool:
        """Reserve and handle at most one job.

        Returns:
            True if a job was handled
        """
        with LogContext(channel=self.channel, worker=self.config.name):
            job = await self.queue.reserve(self.config.timeout)
            if job is None:
                return False
            await self._handle(job)
            return True

    async def _handle(self, job: ReservedJob) -> bool:
        """Run the handler and acknowledge on success.

        Returns:
            True if the job was acknowledged
        """
        with LogContext(job_id=job.id):
            try:
                logger.info(f"Handling job {job.id} (attempt {job.attempt})")
                ok = await self.handler(job)
            except Exception as e:
                self.failed += 1
                logger.exception(
                    f"Job {job.id} failed: {e}; left for re-delivery after {job.ttr}s"
                )
                return False

            if not ok:
                self.failed += 1
                logger.warning(f"Job {job.id} not acknowledged; re-delivered after {job.ttr}s")
                return False

            await self.queue.acknowledge(job.id)
            self.handled += 1
            logger.info(f"Job {job.id} done")
            return True

    async def __aenter__(self) -> "QueueWorker":
        """Start the loop in a background task."""
        self._task = asyncio.create_task(self.run())
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Stop the loop and wait for the current job."""
        self.stop()
        if self._task is not None:
            await self._task
            self._task = None
