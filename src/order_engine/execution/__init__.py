"""
Order execution: quoting/settlement capability, latency tracking and the
state machine that drives each order job.
"""

from .quote_source import QuoteSource, MockQuoteSource
from .latency_monitor import LatencyMonitor, LatencyStats, LatencyTimer
from .state_machine import OrderStateMachine

__all__ = [
    'QuoteSource',
    'MockQuoteSource',
    'LatencyMonitor',
    'LatencyStats',
    'LatencyTimer',
    'OrderStateMachine',
]
