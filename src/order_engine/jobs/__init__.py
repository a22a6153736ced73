from .job_queue import (
    Job, JobHandle, JobOptions, JobQueue, JobState, BackoffPolicy, BackoffType, QueueClosedError
)
from .worker_pool import JobProcessor, WorkerPool
from .job_store import JobStore, StoredJob

__all__ = [
    'Job',
    'JobHandle',
    'JobOptions',
    'JobQueue',
    'JobState',
    'BackoffPolicy',
    'BackoffType',
    'QueueClosedError',
    'JobProcessor',
    'WorkerPool',
    'JobStore',
    'StoredJob',
]
