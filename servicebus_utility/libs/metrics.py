"""Prometheus metrics for queue operations.

The FastAPI app mounts ``metrics_app()`` at ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, make_asgi_app


QUEUE_OPERATION_TOTAL = Counter(
    "servicebus_operation_total", "Total queue operations by name and result", ["operation", "result"]
)
QUEUE_MESSAGES_TOTAL = Counter(
    "servicebus_messages_total", "Total messages sent, received or peeked", ["operation"]
)
QUEUE_OPERATION_LATENCY_SECONDS = Histogram(
    "servicebus_operation_latency_seconds",
    "Time spent waiting on the broker for a single operation",
    ["operation"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10, 30),
)
DESERIALIZATION_FAILED_TOTAL = Counter(
    "servicebus_deserialization_failed_total", "Total message bodies that failed typed decoding", ["target"]
)
QUEUE_DEPTH = Gauge(
    "servicebus_queue_depth", "Active message count last observed for the queue", ["queue"]
)


def metrics_app():
    return make_asgi_app()
