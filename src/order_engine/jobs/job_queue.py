"""
Job Queue - retryable work queue for order jobs

At-least-once delivery: a job whose handler raises is re-delivered, with the
same frozen payload, until it has been attempted ``attempts`` times. Retries
are delayed by the job's backoff policy and released by an APScheduler
AsyncIOScheduler.

With a JobStore attached every state change is written to the database, and
initialize() picks up the jobs a previous process left waiting, delayed or
running. Finished jobs are kept for inspection up to ``keep_finished_jobs``,
then evicted oldest first.
"""

import asyncio
import copy
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Mapping, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from loguru import logger

from ..config import QueueConfig
from ..errors import ExhaustedRetriesError, OrderEngineError, StoreUnavailableError
from ..orders.order_schemas import utcnow

if TYPE_CHECKING:
    from .job_store import JobStore


class BackoffType(Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay between attempts"""

    type: BackoffType = BackoffType.EXPONENTIAL
    delay_ms: float = 500.0     # Base delay

    def delay_after(self, attempts_made: int) -> float:
        """Seconds to wait after the given number of failed attempts"""
        if self.type is BackoffType.FIXED:
            return self.delay_ms / 1000.0
        return self.delay_ms * (2 ** (max(attempts_made, 1) - 1)) / 1000.0

    @classmethod
    def exponential(cls, delay_ms: float) -> 'BackoffPolicy':
        return cls(BackoffType.EXPONENTIAL, delay_ms)


@dataclass(frozen=True)
class JobOptions:
    """Retry options for a job"""

    attempts: int = 3
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {self.attempts}")


class JobState(Enum):
    WAITING = "waiting"       # Ready for a worker
    DELAYED = "delayed"       # Waiting out a backoff delay
    ACTIVE = "active"         # Held by a worker
    COMPLETED = "completed"
    FAILED = "failed"         # Attempts exhausted


@dataclass
class Job:
    """A unit of queued work; payload is read-only"""

    job_id: str
    name: str
    payload: Mapping[str, Any]
    options: JobOptions

    state: JobState = JobState.WAITING
    attempts_made: int = 0
    failed_reason: Optional[str] = None
    return_value: Any = None

    created_at: datetime = field(default_factory=utcnow)
    processed_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None      # Release time of a delayed retry (naive UTC)
    finished_at: Optional[datetime] = None

    def is_finished(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)


class JobHandle:
    """Caller-side view of an enqueued job"""

    def __init__(self, job: Job, finished: asyncio.Future):
        self.job = job
        self._finished = finished

    @property
    def job_id(self) -> str:
        return self.job.job_id

    def add_done_callback(self, callback: Callable[['JobHandle'], None]) -> None:
        """Call ``callback(handle)`` once the job completes or fails"""
        self._finished.add_done_callback(lambda _future: callback(self))

    async def wait_until_finished(self, timeout: Optional[float] = None) -> Job:
        """Wait for the job to complete or exhaust its attempts"""
        await asyncio.wait_for(asyncio.shield(self._finished), timeout)
        return self.job


class QueueClosedError(OrderEngineError):
    """Queue is not accepting or handing out jobs"""
    pass


class JobQueue:
    """
    Single named queue of jobs.

    Workers call take() to receive the next job, then report the outcome with
    complete() or fail(). A job whose attempts are exhausted stays reserved
    until finish() so the caller can record the failure first.
    """

    def __init__(self, config: Optional[QueueConfig] = None, job_store: Optional['JobStore'] = None):
        self.config = config or QueueConfig()
        self.name = self.config.name
        self.job_store = job_store

        self._jobs: Dict[str, Job] = {}
        self._finished: Dict[str, asyncio.Future] = {}
        self._finished_ids: Deque[str] = deque()
        self._ready: Optional[asyncio.Queue] = None
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def default_options(self) -> JobOptions:
        return JobOptions(
            attempts=self.config.default_attempts,
            backoff=BackoffPolicy.exponential(self.config.default_backoff_ms),
        )

    async def initialize(self) -> List[JobHandle]:
        """
        Start the queue and recover persisted unfinished jobs.

        Returns handles for the recovered jobs.

        Raises:
            StoreUnavailableError: the job store could not be read
        """
        self._ready = asyncio.Queue()
        self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop(), timezone="UTC")
        self._scheduler.start()
        self._running = True

        recovered = []
        if self.job_store is not None:
            await self.job_store.initialize()
            for job in await self.job_store.load_unfinished(self.name):
                recovered.append(self._recover(job))

        logger.info(f"JobQueue '{self.name}' started ({len(recovered)} jobs recovered)")
        return recovered

    async def close(self) -> None:
        self._running = False
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        counts = self.counts()
        if counts[JobState.DELAYED.value] or counts[JobState.WAITING.value]:
            if self.job_store is not None:
                logger.info(f"JobQueue '{self.name}' closed with pending jobs kept in store: {counts}")
            else:
                logger.warning(f"JobQueue '{self.name}' closed with pending jobs: {counts}")
        logger.info(f"JobQueue '{self.name}' closed")

    async def enqueue(
        self,
        name: str,
        payload: Mapping[str, Any],
        options: Optional[JobOptions] = None
    ) -> JobHandle:
        """
        Add a job; the payload is copied and frozen.

        Raises:
            QueueClosedError: queue not initialized or already closed
            StoreUnavailableError: the job could not be persisted
        """
        if not self._running:
            raise QueueClosedError(f"Queue '{self.name}' is not running")

        job = Job(
            job_id=str(uuid.uuid4()),
            name=name,
            payload=MappingProxyType(copy.deepcopy(dict(payload))),
            options=options or self.default_options,
        )
        if self.job_store is not None:
            await self.job_store.save(self.name, job)

        handle = self._track(job)
        self._ready.put_nowait(job.job_id)

        logger.debug(f"Enqueued job {job.job_id} ({name}) with {job.options.attempts} attempts")
        return handle

    async def take(self) -> Job:
        """Wait for the next ready job and mark it active"""
        if self._ready is None:
            raise QueueClosedError(f"Queue '{self.name}' is not running")

        job_id = await self._ready.get()
        job = self._jobs[job_id]
        job.state = JobState.ACTIVE
        job.attempts_made += 1
        job.processed_at = utcnow()
        job.next_run_at = None
        try:
            await self._persist(job)
        except asyncio.CancelledError:
            # Worker stopped before running it
            job.state = JobState.WAITING
            job.attempts_made -= 1
            self._ready.put_nowait(job_id)
            raise
        return job

    async def complete(self, job: Job, result: Any = None) -> None:
        job.state = JobState.COMPLETED
        job.return_value = result
        await self.finish(job)

    async def fail(self, job: Job, error: BaseException) -> Optional[ExhaustedRetriesError]:
        """
        Record a failed attempt.

        Schedules a retry and returns None while attempts remain; otherwise
        marks the job failed and returns the ExhaustedRetriesError. The caller
        must then call finish().
        """
        job.failed_reason = str(error) or error.__class__.__name__

        if job.attempts_made < job.options.attempts:
            delay = job.options.backoff.delay_after(job.attempts_made)
            job.state = JobState.DELAYED
            job.next_run_at = utcnow() + timedelta(seconds=delay)
            await self._persist(job)
            if self._scheduler is not None:
                self._schedule_release(job)
            logger.warning(
                f"Job {job.job_id} attempt {job.attempts_made}/{job.options.attempts} failed: "
                f"{job.failed_reason}; retrying in {delay:.3f}s"
            )
            return None

        job.state = JobState.FAILED
        return ExhaustedRetriesError(job.job_id, job.attempts_made, error)

    async def finish(self, job: Job) -> None:
        """Resolve waiters of a completed or failed job"""
        job.finished_at = utcnow()
        await self._persist(job)

        finished = self._finished.pop(job.job_id, None)
        if finished is not None and not finished.done():
            finished.set_result(job)

        self._finished_ids.append(job.job_id)
        while len(self._finished_ids) > self.config.keep_finished_jobs:
            await self._evict(self._finished_ids.popleft())

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def counts(self) -> Dict[str, int]:
        """Number of jobs per state"""
        counts = {state.value: 0 for state in JobState}
        for job in self._jobs.values():
            counts[job.state.value] += 1
        return counts

    def _track(self, job: Job) -> JobHandle:
        finished = asyncio.get_running_loop().create_future()
        self._jobs[job.job_id] = job
        self._finished[job.job_id] = finished
        return JobHandle(job, finished)

    def _recover(self, job: Job) -> JobHandle:
        job.payload = MappingProxyType(dict(job.payload))
        if job.state is JobState.ACTIVE:
            # Interrupted attempt; it is not counted
            job.attempts_made = max(job.attempts_made - 1, 0)

        handle = self._track(job)
        if job.state is JobState.DELAYED and job.next_run_at is not None and job.next_run_at > utcnow():
            self._schedule_release(job)
        else:
            job.state = JobState.WAITING
            job.next_run_at = None
            self._ready.put_nowait(job.job_id)

        logger.info(f"Recovered job {job.job_id} ({job.name}) as {job.state.value}, "
                    f"{job.attempts_made}/{job.options.attempts} attempts made")
        return handle

    async def _persist(self, job: Job) -> None:
        if self.job_store is None:
            return
        try:
            await self.job_store.save(self.name, job)
        except StoreUnavailableError as e:
            logger.warning(f"Could not persist job {job.job_id} as {job.state.value}: {e}")

    async def _evict(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        if self.job_store is None:
            return
        try:
            await self.job_store.delete(job_id)
        except StoreUnavailableError as e:
            logger.warning(f"Could not remove finished job {job_id}: {e}")

    def _schedule_release(self, job: Job) -> None:
        self._scheduler.add_job(
            self._release,
            trigger=DateTrigger(run_date=job.next_run_at.replace(tzinfo=timezone.utc)),
            args=[job.job_id],
            id=f"retry:{job.job_id}:{job.attempts_made}",
            misfire_grace_time=None,
        )

    async def _release(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if job is None or job.state is not JobState.DELAYED:
            return
        job.state = JobState.WAITING
        job.next_run_at = None
        await self._persist(job)
        self._ready.put_nowait(job_id)
