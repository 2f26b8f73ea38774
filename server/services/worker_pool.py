"""Bounded background worker pool for webhook processing.

Received webhooks are answered immediately and processed later by a fixed
number of worker tasks draining an ``asyncio.Queue``. When the queue is full
``submit`` raises ``QueueFullError`` so the caller can push back.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

from core.logging import get_logger
from services.flow_engine.exceptions import QueueFullError

logger = get_logger(__name__)

Job = Callable[[], Awaitable[None]]
ErrorCallback = Callable[[str, Exception], Awaitable[None]]


class FlowWorkerPool:
    """Runs submitted jobs on a fixed set of background workers.

    Job failures are logged and passed to the error callback; they never
    stop a worker.
    """

    def __init__(self, concurrency: int = 4, queue_size: int = 100,
                 on_error: Optional[ErrorCallback] = None):
        """Initialize worker pool.

        Args:
            concurrency: Number of worker tasks
            queue_size: Max jobs waiting to run
            on_error: Async callback invoked with (job_name, exception)
        """
        self.concurrency = concurrency
        self.queue_size = queue_size
        self._queue: asyncio.Queue[Tuple[str, Job]] = asyncio.Queue(maxsize=queue_size)
        self._workers: List[asyncio.Task] = []
        self._running = False
        self._on_error = on_error

    def set_error_callback(self, callback: ErrorCallback) -> None:
        """Set callback to invoke when a job fails."""
        self._on_error = callback

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the worker tasks."""
        if self._running:
            logger.warning("Worker pool already running")
            return

        self._running = True
        self._workers = [
            asyncio.create_task(self._worker_loop(i), name=f"flow-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.info("Worker pool started", concurrency=self.concurrency,
                    queue_size=self.queue_size)

    async def stop(self, drain: bool = True) -> None:
        """Stop the workers, by default after queued jobs have finished."""
        if drain and self._running:
            await self._queue.join()

        self._running = False
        for task in self._workers:
            task.cancel()
        for task in self._workers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._workers = []
        logger.info("Worker pool stopped")

    def submit(self, job: Job, name: str = "job") -> None:
        """Queue a job.

        Raises:
            QueueFullError: The queue already holds ``queue_size`` jobs
        """
        try:
            self._queue.put_nowait((name, job))
        except asyncio.QueueFull:
            logger.warning("Worker queue full, job rejected", job=name,
                           queue_size=self.queue_size)
            raise QueueFullError(self.queue_size) from None
        logger.debug("Job queued", job=name, pending=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued job has run."""
        await self._queue.join()

    async def _worker_loop(self, worker_id: int) -> None:
        while True:
            name, job = await self._queue.get()
            try:
                await job()
            except Exception as e:
                logger.error("Background job failed", job=name, worker=worker_id,
                             error=str(e), exc_info=True)
                await self._report_error(name, e)
            finally:
                self._queue.task_done()

    async def _report_error(self, name: str, error: Exception) -> None:
        if not self._on_error:
            return
        try:
            await self._on_error(name, error)
        except Exception as e:
            logger.error("Error callback failed", job=name, error=str(e))
