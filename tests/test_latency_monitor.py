"""
Latency monitor tests
"""

from order_engine.execution.latency_monitor import END_TO_END, QUOTE_FETCH, LatencyMonitor


class TestLatencyMonitor:
    """Per-order metrics and aggregate stats"""

    def test_timer_records_order_metric(self):
        monitor = LatencyMonitor()
        monitor.start_timer("o1", QUOTE_FETCH)
        elapsed = monitor.stop_timer("o1", QUOTE_FETCH)

        assert elapsed >= 0.0
        assert monitor.get_order_metrics("o1") == {QUOTE_FETCH: elapsed}
        assert monitor.get_summary()['active_timers'] == 0

    def test_stopping_unknown_timer_records_nothing(self):
        monitor = LatencyMonitor()
        assert monitor.stop_timer("o1", END_TO_END) == 0.0
        assert monitor.get_stats(END_TO_END) is None

    def test_order_metrics_keep_most_recent_orders(self):
        monitor = LatencyMonitor(history_size=3)
        for i in range(5):
            monitor.record_latency(f"o{i}", END_TO_END, 10.0 * i)
            monitor.record_latency(f"o{i}", QUOTE_FETCH, 1.0)

        assert monitor.get_summary()['orders_tracked'] == 3
        assert monitor.get_order_metrics("o0") is None
        assert monitor.get_order_metrics("o1") is None
        assert monitor.get_order_metrics("o4") == {END_TO_END: 40.0, QUOTE_FETCH: 1.0}
        assert monitor.get_stats(END_TO_END).count == 3

    def test_stats(self):
        monitor = LatencyMonitor()
        for value in (10.0, 20.0, 30.0, 40.0):
            monitor.record_latency("o1", END_TO_END, value)

        stats = monitor.get_stats(END_TO_END)
        assert stats.count == 4
        assert stats.mean == 25.0
        assert stats.median == 25.0
        assert stats.min_value == 10.0
        assert stats.max_value == 40.0
