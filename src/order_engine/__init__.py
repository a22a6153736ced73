"""
Order Execution Engine

Asynchronous execution of swap orders routed across two venues.

Core Components:
- OrderStore: durable audit trail of orders (SQLAlchemy)
- NotificationBus: per-order live status fan-out
- JobQueue: retryable work queue with exponential backoff
- WorkerPool: bounded concurrent job executors
- OrderStateMachine: quote routing, settlement and status transitions
- OrderEngine: service container and ingress calls
"""

__version__ = "0.1.0"

from .config import EngineConfig, StoreConfig, QueueConfig, WorkerConfig, BusConfig, configure_logging
from .errors import (
    OrderEngineError, ValidationError, TransientInfraError, StoreUnavailableError,
    TransportUnavailableError, DuplicateKeyError, ExecutionError, ExhaustedRetriesError
)
from .orders import Order, OrderStatus, Venue, Quote, Route, ExecutionReceipt, StatusEvent
from .store import OrderStore
from .bus import NotificationBus, Subscription, LocalTransport, Transport
from .jobs import JobQueue, JobOptions, BackoffPolicy, WorkerPool, JobStore
from .execution import QuoteSource, MockQuoteSource, OrderStateMachine, LatencyMonitor
from .engine import OrderEngine, OrderSubmission

__all__ = [
    # Configuration
    'EngineConfig',
    'StoreConfig',
    'QueueConfig',
    'WorkerConfig',
    'BusConfig',
    'configure_logging',

    # Errors
    'OrderEngineError',
    'ValidationError',
    'TransientInfraError',
    'StoreUnavailableError',
    'TransportUnavailableError',
    'DuplicateKeyError',
    'ExecutionError',
    'ExhaustedRetriesError',

    # Data model
    'Order',
    'OrderStatus',
    'Venue',
    'Quote',
    'Route',
    'ExecutionReceipt',
    'StatusEvent',

    # Core components
    'OrderStore',
    'NotificationBus',
    'Subscription',
    'LocalTransport',
    'Transport',
    'JobQueue',
    'JobOptions',
    'BackoffPolicy',
    'WorkerPool',
    'JobStore',
    'QuoteSource',
    'MockQuoteSource',
    'OrderStateMachine',
    'LatencyMonitor',
    'OrderEngine',
    'OrderSubmission',
]
