"""
Latency Monitor - per-stage timing for order processing

Tracks how long each order spends in:
- quote_fetch: both venue quotes (concurrent)
- settlement: the venue execute call
- end_to_end: a full state machine attempt
"""

import statistics
import time
from collections import OrderedDict, defaultdict, deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional


QUOTE_FETCH = 'quote_fetch'
SETTLEMENT = 'settlement'
END_TO_END = 'end_to_end'


@dataclass
class LatencyStats:
    """Statistical summary of one metric"""

    metric_name: str
    count: int = 0
    mean: float = 0.0
    median: float = 0.0
    p95: float = 0.0
    min_value: float = 0.0
    max_value: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'metric_name': self.metric_name,
            'count': self.count,
            'mean': self.mean,
            'median': self.median,
            'p95': self.p95,
            'min': self.min_value,
            'max': self.max_value,
        }


class LatencyTimer:
    """
    High-precision timer for measuring latency

    Uses time.perf_counter(); elapsed values are in milliseconds.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self.start_time = 0.0
        self.end_time = 0.0
        self.is_running = False

    def start(self) -> 'LatencyTimer':
        self.start_time = time.perf_counter()
        self.is_running = True
        return self

    def stop(self) -> float:
        """Stop the timer and return elapsed milliseconds"""
        if not self.is_running:
            return 0.0
        self.end_time = time.perf_counter()
        self.is_running = False
        return (self.end_time - self.start_time) * 1000.0


class LatencyMonitor:
    """Rolling latency measurements per metric and the latest value per order"""

    def __init__(self, history_size: int = 10000):
        self.history_size = history_size
        self._active_timers: Dict[str, Dict[str, LatencyTimer]] = defaultdict(dict)
        self._measurements: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=history_size))
        # Latest values per order, oldest orders evicted past history_size
        self._order_metrics: Dict[str, Dict[str, float]] = OrderedDict()

    def start_timer(self, order_id: str, metric_name: str) -> LatencyTimer:
        timer = LatencyTimer(f"{order_id}_{metric_name}").start()
        self._active_timers[order_id][metric_name] = timer
        return timer

    def stop_timer(self, order_id: str, metric_name: str) -> float:
        """Stop a running timer and record it; 0.0 if no such timer"""
        timers = self._active_timers.get(order_id)
        if not timers or metric_name not in timers:
            return 0.0

        elapsed_ms = timers.pop(metric_name).stop()
        if not timers:
            del self._active_timers[order_id]

        self.record_latency(order_id, metric_name, elapsed_ms)
        return elapsed_ms

    def discard_timers(self, order_id: str) -> None:
        """Drop unfinished timers of an aborted attempt"""
        self._active_timers.pop(order_id, None)

    def record_latency(self, order_id: str, metric_name: str, latency_ms: float) -> None:
        self._measurements[metric_name].append(latency_ms)
        metrics = self._order_metrics.get(order_id)
        if metrics is None:
            metrics = self._order_metrics[order_id] = {}
            while len(self._order_metrics) > self.history_size:
                self._order_metrics.popitem(last=False)
        metrics[metric_name] = latency_ms

    def get_order_metrics(self, order_id: str) -> Optional[Dict[str, float]]:
        metrics = self._order_metrics.get(order_id)
        return dict(metrics) if metrics else None

    def get_stats(self, metric_name: str) -> Optional[LatencyStats]:
        measurements = sorted(self._measurements.get(metric_name, ()))
        if not measurements:
            return None

        count = len(measurements)
        return LatencyStats(
            metric_name=metric_name,
            count=count,
            mean=statistics.mean(measurements),
            median=statistics.median(measurements),
            p95=measurements[min(int(0.95 * count), count - 1)],
            min_value=measurements[0],
            max_value=measurements[-1],
        )

    def get_summary(self) -> Dict[str, Any]:
        return {
            'active_timers': len(self._active_timers),
            'orders_tracked': len(self._order_metrics),
            'metrics': {
                name: self.get_stats(name).to_dict()
                for name in self._measurements
                if self._measurements[name]
            },
        }
