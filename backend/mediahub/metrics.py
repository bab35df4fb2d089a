"""
Prometheus-compatible metrics for the media hub.

Provides counters and gauges in Prometheus text exposition format.
No external dependencies required -- uses plain Python with thread-safe counters.

Metrics exposed:
  - mediahub_webhook_updates_total   (counter)  Telegram updates received
  - mediahub_queue_items_total       (counter)  Queue items by outcome
  - mediahub_queue_last_batch_size   (gauge)    Items fetched by the last drain
  - mediahub_storage_uploads_total   (counter)  Storage uploads by result (uploaded/reused)
  - mediahub_glide_mutations_total   (counter)  Glide mutations by kind and outcome
"""

import threading
import time
from typing import Dict, Tuple


class _Counter:
    """Thread-safe monotonically increasing counter."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: float = 0

    def inc(self, amount: float = 1) -> None:
        with self._lock:
            self._value += amount

    @property
    def value(self) -> float:
        with self._lock:
            return self._value


class _LabeledCounter:
    """Thread-safe counter with label dimensions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: Dict[Tuple[str, ...], float] = {}

    def inc(self, labels: Tuple[str, ...], amount: float = 1) -> None:
        with self._lock:
            self._values[labels] = self._values.get(labels, 0) + amount

    def get(self, labels: Tuple[str, ...]) -> float:
        with self._lock:
            return self._values.get(labels, 0)

    def items(self) -> list:
        with self._lock:
            return list(self._values.items())


class _Gauge:
    """Thread-safe gauge."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: float = 0

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    @property
    def value(self) -> float:
        with self._lock:
            return self._value


class MetricsRegistry:
    """Central registry for all application metrics."""

    def __init__(self) -> None:
        # Counters
        self.webhook_updates_total = _Counter()
        self.queue_items_total = _LabeledCounter()  # (outcome,)
        self.storage_uploads_total = _LabeledCounter()  # (result,)
        self.glide_mutations_total = _LabeledCounter()  # (kind, outcome)

        # Gauges
        self.queue_last_batch_size = _Gauge()

        self._start_time = time.time()

    def render(self) -> str:
        """Render all metrics in Prometheus text exposition format."""
        lines: list[str] = []

        lines.append("# HELP mediahub_webhook_updates_total Telegram updates received by the webhook.")
        lines.append("# TYPE mediahub_webhook_updates_total counter")
        lines.append(f"mediahub_webhook_updates_total {self.webhook_updates_total.value}")

        lines.append("# HELP mediahub_queue_items_total Queue items handled by outcome.")
        lines.append("# TYPE mediahub_queue_items_total counter")
        for (outcome,), value in self.queue_items_total.items():
            lines.append(f'mediahub_queue_items_total{{outcome="{outcome}"}} {value}')

        lines.append("# HELP mediahub_queue_last_batch_size Items fetched by the most recent drain.")
        lines.append("# TYPE mediahub_queue_last_batch_size gauge")
        lines.append(f"mediahub_queue_last_batch_size {self.queue_last_batch_size.value}")

        lines.append("# HELP mediahub_storage_uploads_total Storage uploads by result.")
        lines.append("# TYPE mediahub_storage_uploads_total counter")
        for (result,), value in self.storage_uploads_total.items():
            lines.append(f'mediahub_storage_uploads_total{{result="{result}"}} {value}')

        lines.append("# HELP mediahub_glide_mutations_total Glide mutations by kind and outcome.")
        lines.append("# TYPE mediahub_glide_mutations_total counter")
        for (kind, outcome), value in self.glide_mutations_total.items():
            lines.append(f'mediahub_glide_mutations_total{{kind="{kind}",outcome="{outcome}"}} {value}')

        lines.append("# HELP mediahub_uptime_seconds Seconds since the metrics registry was created.")
        lines.append("# TYPE mediahub_uptime_seconds gauge")
        lines.append(f"mediahub_uptime_seconds {time.time() - self._start_time:.1f}")

        # Prometheus text format requires a trailing newline
        lines.append("")
        return "\n".join(lines)


# Singleton instance -- import this from anywhere in the backend
metrics = MetricsRegistry()
