"""
Job Store - durable job records for the JobQueue

Keeps one row per job in a ``jobs`` table of the order database. The queue
writes every state change through here, so jobs that were waiting, delayed or
running when the process stopped are handed out again by the next
JobQueue.initialize().
"""

import json
from typing import List

from sqlalchemy import Column, DateTime, Float, Integer, String, Text, delete, select

from ..store.order_store import Base, OrderStore
from .job_queue import BackoffPolicy, BackoffType, Job, JobOptions, JobState


UNFINISHED_STATES = (JobState.WAITING, JobState.DELAYED, JobState.ACTIVE)


class StoredJob(Base):
    """Database model for queued jobs"""
    __tablename__ = 'jobs'

    id = Column(String, primary_key=True)
    queue = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    payload = Column(Text, nullable=False)          # JSON
    attempts = Column(Integer, nullable=False)
    backoff_type = Column(String, nullable=False)
    backoff_delay_ms = Column(Float, nullable=False)
    state = Column(String, nullable=False, index=True)
    attempts_made = Column(Integer, nullable=False, default=0)
    failed_reason = Column(Text, nullable=True)
    next_run_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)


class JobStore:
    """
    Persists jobs through an OrderStore's database connection.

    All calls share the order store's thread offloading and concurrency bound
    and raise StoreUnavailableError on database failures.
    """

    def __init__(self, order_store: OrderStore):
        self.order_store = order_store

    async def initialize(self) -> None:
        """Create the jobs table if missing; the order store must be initialized"""
        await self.order_store.run_sync(self._create_table)

    async def save(self, queue_name: str, job: Job) -> None:
        await self.order_store.run_sync(self._save, queue_name, job)

    async def delete(self, job_id: str) -> None:
        await self.order_store.run_sync(self._delete, job_id)

    async def load_unfinished(self, queue_name: str) -> List[Job]:
        """Jobs of the queue that were never completed or failed, oldest first"""
        return await self.order_store.run_sync(self._load_unfinished, queue_name)

    def _create_table(self) -> None:
        StoredJob.__table__.create(self.order_store.engine, checkfirst=True)

    def _save(self, queue_name: str, job: Job) -> None:
        session = self.order_store.session_factory()
        try:
            session.merge(StoredJob(
                id=job.job_id,
                queue=queue_name,
                name=job.name,
                payload=json.dumps(dict(job.payload)),
                attempts=job.options.attempts,
                backoff_type=job.options.backoff.type.value,
                backoff_delay_ms=job.options.backoff.delay_ms,
                state=job.state.value,
                attempts_made=job.attempts_made,
                failed_reason=job.failed_reason,
                next_run_at=job.next_run_at,
                created_at=job.created_at,
            ))
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _delete(self, job_id: str) -> None:
        session = self.order_store.session_factory()
        try:
            session.execute(delete(StoredJob).where(StoredJob.id == job_id))
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _load_unfinished(self, queue_name: str) -> List[Job]:
        session = self.order_store.session_factory()
        try:
            rows = session.scalars(
                select(StoredJob)
                .where(StoredJob.queue == queue_name)
                .where(StoredJob.state.in_([state.value for state in UNFINISHED_STATES]))
                .order_by(StoredJob.created_at)
            ).all()
            return [_to_job(row) for row in rows]
        finally:
            session.close()


def _to_job(row: StoredJob) -> Job:
    return Job(
        job_id=row.id,
        name=row.name,
        payload=json.loads(row.payload),
        options=JobOptions(
            attempts=row.attempts,
            backoff=BackoffPolicy(BackoffType(row.backoff_type), row.backoff_delay_ms),
        ),
        state=JobState(row.state),
        attempts_made=row.attempts_made,
        failed_reason=row.failed_reason,
        next_run_at=row.next_run_at,
        created_at=row.created_at,
    )
