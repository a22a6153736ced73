"""
Tests package for the Order Engine

This package contains all test files organized by component.
"""

# Test organization:
# - test_order_schemas.py: Orders, routing decisions and status event wire format
# - test_order_store.py: Order store contract against SQLite
# - test_notification_bus.py: Per-order fan-out and streams
# - test_job_queue.py: Retries, backoff and the worker pool
# - test_state_machine.py: Lifecycle transitions and failure recording
# - test_order_engine.py: End-to-end through the service container
# - test_config.py: Environment configuration and logging sinks
# - test_latency_monitor.py: Stage timers and per-order metric retention
# - fakes.py: Deterministic quote sources and a recording order store
