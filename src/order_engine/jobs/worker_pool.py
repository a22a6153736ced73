"""
Worker Pool - bounded set of concurrent job executors

Each worker takes one job at a time and runs it to completion or to a retry
boundary before taking the next. Jobs already running are never cancelled:
stop() waits for them and only cancels idle workers.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

from loguru import logger

from ..config import WorkerConfig
from ..errors import ExhaustedRetriesError
from .job_queue import Job, JobQueue


class JobProcessor(ABC):
    """Handler invoked by workers for each delivered job"""

    @abstractmethod
    async def process(self, job: Job) -> Any:
        """Run one attempt; raising makes the queue retry the job"""

    @abstractmethod
    async def on_exhausted(self, job: Job, error: ExhaustedRetriesError) -> None:
        """Record a job whose attempts are used up"""


class WorkerPool:
    """Runs ``concurrency`` workers against a JobQueue"""

    def __init__(self, queue: JobQueue, processor: JobProcessor, config: Optional[WorkerConfig] = None):
        self.queue = queue
        self.processor = processor
        self.config = config or WorkerConfig()

        self._tasks: List[asyncio.Task] = []
        self._busy: Set[int] = set()
        self._running = False

        # Performance tracking
        self.jobs_completed = 0
        self.jobs_failed = 0
        self.attempts_failed = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def busy_workers(self) -> int:
        return len(self._busy)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._worker_loop(worker_id), name=f"{self.queue.name}-worker-{worker_id}")
            for worker_id in range(self.config.concurrency)
        ]
        logger.info(f"WorkerPool started with {self.config.concurrency} workers on '{self.queue.name}'")

    async def stop(self) -> None:
        """Let in-flight jobs finish, cancel idle workers"""
        if not self._running:
            return
        self._running = False

        for worker_id, task in enumerate(self._tasks):
            if worker_id not in self._busy:
                task.cancel()

        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("WorkerPool stopped")

    def get_stats(self) -> Dict[str, int]:
        return {
            'concurrency': self.config.concurrency,
            'busy_workers': self.busy_workers,
            'jobs_completed': self.jobs_completed,
            'jobs_failed': self.jobs_failed,
            'attempts_failed': self.attempts_failed,
        }

    async def _worker_loop(self, worker_id: int) -> None:
        while self._running:
            job = await self.queue.take()
            self._busy.add(worker_id)
            try:
                await self._run_job(job)
            finally:
                self._busy.discard(worker_id)

    async def _run_job(self, job: Job) -> None:
        try:
            result = await self.processor.process(job)
        except Exception as e:
            self.attempts_failed += 1
            exhausted = await self.queue.fail(job, e)
            if exhausted is None:
                return

            self.jobs_failed += 1
            logger.error(f"Job {job.job_id} failed permanently: {exhausted}")
            try:
                await self.processor.on_exhausted(job, exhausted)
            except Exception as record_error:
                logger.error(f"Could not record failure of job {job.job_id}: {record_error}")
            finally:
                await self.queue.finish(job)
            return

        self.jobs_completed += 1
        await self.queue.complete(job, result)
        logger.debug(f"Job {job.job_id} completed on attempt {job.attempts_made}")
