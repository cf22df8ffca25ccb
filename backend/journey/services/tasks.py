# background task queue: fire-and-forget work with retry and a dead-letter sink
#
# jobs are submitted as (name, factory) where the factory returns a fresh coroutine
# per attempt. a failing job is retried with exponential backoff up to
# ANALYSIS_MAX_ATTEMPTS, then recorded in the dead_letters collection.

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from journey.config import settings
from journey.services.clock import isoformat, utcnow
from journey.services.db import Database, db as default_db

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[object]]


@dataclass
class Job:
    name: str
    factory: JobFactory
    attempts: int = 0
    errors: list[str] = field(default_factory=list)


class TaskQueue:
    """asyncio queue drained by a single worker task"""

    def __init__(
        self,
        database: Optional[Database] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.db = database or default_db
        self.max_attempts = max_attempts or settings.ANALYSIS_MAX_ATTEMPTS
        self.retry_delay = settings.ANALYSIS_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    @property
    def pending(self) -> int:
        return self.queue.qsize()

    def submit(self, name: str, factory: JobFactory) -> None:
        """enqueue a job without waiting for it"""
        self.queue.put_nowait(Job(name=name, factory=factory))
        logger.info(f"Queued job {name}")

    async def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())
            logger.info("Task queue worker started")

    async def stop(self) -> None:
        """let the worker finish the in-flight job and everything queued, then stop it.
        without a running worker the queue is drained inline."""
        if self._worker is not None:
            if not self._worker.done():
                await self.queue.join()
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        await self.run_until_empty()
        logger.info("Task queue worker stopped")

    async def run_until_empty(self) -> None:
        """process queued jobs in the current task, retries included"""
        while not self.queue.empty():
            job = self.queue.get_nowait()
            await self._execute(job)
            self.queue.task_done()

    async def _run(self) -> None:
        while True:
            job = await self.queue.get()
            try:
                await self._execute(job)
            finally:
                self.queue.task_done()

    async def _execute(self, job: Job) -> None:
        while job.attempts < self.max_attempts:
            job.attempts += 1
            try:
                await job.factory()
                if job.attempts > 1:
                    logger.info(f"Job {job.name} succeeded on attempt {job.attempts}")
                return
            except Exception as e:
                job.errors.append(str(e))
                logger.warning(f"Job {job.name} failed (attempt {job.attempts}/{self.max_attempts}): {e}")
                if job.attempts < self.max_attempts:
                    await asyncio.sleep(self.retry_delay * (2 ** (job.attempts - 1)))
        await self._dead_letter(job)

    async def _dead_letter(self, job: Job) -> None:
        logger.error(f"Job {job.name} dead-lettered after {job.attempts} attempts: {job.errors[-1] if job.errors else ''}")
        try:
            await self.db.dead_letters.insert_one({
                "job": job.name,
                "attempts": job.attempts,
                "errors": job.errors,
                "failed_at": isoformat(utcnow()),
            })
        except Exception as e:
            logger.error(f"Could not record dead letter for {job.name}: {e}")


# singleton instance
task_queue = TaskQueue()


def get_task_queue() -> TaskQueue:
    """dependency injection for the background queue"""
    return task_queue
