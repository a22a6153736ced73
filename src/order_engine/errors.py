"""
Error taxonomy for the order execution pipeline

Every failure raised inside the core derives from OrderEngineError so callers
can catch the whole family at the service boundary.
"""

from typing import Optional


class OrderEngineError(Exception):
    """Base exception for order engine errors"""
    pass


class ValidationError(OrderEngineError):
    """Order payload is malformed and was rejected before enqueue"""
    pass


class TransientInfraError(OrderEngineError):
    """Store or bus is momentarily unreachable"""
    pass


class StoreUnavailableError(TransientInfraError):
    """Order store read/write failed"""
    pass


class TransportUnavailableError(TransientInfraError):
    """Notification transport is not connected"""
    pass


class DuplicateKeyError(OrderEngineError):
    """An order with the same id already exists"""

    def __init__(self, order_id: str):
        super().__init__(f"Order already exists: {order_id}")
        self.order_id = order_id


class ExecutionError(OrderEngineError):
    """Quote fetch or settlement failed"""
    pass


class ExhaustedRetriesError(OrderEngineError):
    """
    A job failed on every attempt allowed by its options.

    Carries the last error raised by the handler and the number of attempts
    actually made.
    """

    def __init__(self, job_id: str, attempts: int, last_error: Optional[BaseException]):
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Job {job_id} failed after {attempts} attempts: {self.message}")

    @property
    def message(self) -> str:
        """Human-readable message of the last error"""
        if self.last_error is None:
            return "unknown error"
        return str(self.last_error) or self.last_error.__class__.__name__
