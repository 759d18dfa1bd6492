"""In-process metrics for the tutor and the request gate."""

import threading
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Any, Optional

from linkdok.utils.logger import get_logger

logger = get_logger(__name__)

HISTOGRAM_WINDOW = 1000

class MetricsCollector:
    """
    Counters, latency windows and gauges, exposed as a flat mapping.

    Keys follow the Prometheus text convention, e.g.
    ``tutor_requests{outcome=success}_total``. Every mutation takes a lock
    because gate checks run on the threadpool as well as the event loop.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.enabled = (config or {}).get('metrics_enabled', True)
        self.start_time = time.time()

        self._counters: Dict[str, int] = defaultdict(int)
        self._samples: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=HISTOGRAM_WINDOW))
        self._gauges: Dict[str, float] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(name: str, labels: Optional[Dict[str, str]] = None) -> str:
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def increment_counter(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None):
        if self.enabled:
            with self._lock:
                self._counters[self._key(name, labels)] += value

    def record_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Add a sample; only the most recent HISTOGRAM_WINDOW are kept."""
        if self.enabled:
            with self._lock:
                self._samples[self._key(name, labels)].append(value)

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        if self.enabled:
            with self._lock:
                self._gauges[self._key(name, labels)] = value

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of every metric, histograms summarised as avg/min/max/p95/count."""
        snapshot: Dict[str, Any] = {}

        with self._lock:
            for key, value in self._counters.items():
                snapshot[f"{key}_total"] = value

            for key, window in self._samples.items():
                if not window:
                    continue
                ordered = sorted(window)
                snapshot[f"{key}_avg"] = sum(ordered) / len(ordered)
                snapshot[f"{key}_min"] = ordered[0]
                snapshot[f"{key}_max"] = ordered[-1]
                snapshot[f"{key}_p95"] = ordered[min(len(ordered) - 1, int(len(ordered) * 0.95))]
                snapshot[f"{key}_count"] = len(ordered)

            snapshot.update(self._gauges)

        snapshot["uptime_seconds"] = time.time() - self.start_time
        return snapshot

    # Domain helpers

    def record_gate_rejection(self, endpoint: str, reason: str, tracked_clients: Optional[int] = None):
        """Count a request refused by the rate limiter or the payload validator."""
        self.increment_counter("gate_rejections", labels={"endpoint": endpoint, "reason": reason})
        if tracked_clients is not None:
            self.set_gauge("rate_limit_tracked_clients", tracked_clients)

    def record_candidate(self, model: str, status: str):
        """Count one attempt against a single model."""
        self.increment_counter("tutor_candidates", labels={"model": model, "status": status})

    def record_failover(self, provider: str):
        """Count a hand-over from the primary provider to ``provider``."""
        self.increment_counter("tutor_failovers")
        self.increment_counter("tutor_failovers_by_provider", labels={"provider": provider})

    def record_tutor_metrics(self, outcome: str, latency_ms: int, model_name: Optional[str] = None):
        """Record the outcome of one tutor request."""
        self.increment_counter("tutor_requests", labels={"outcome": outcome})

        if outcome == "success" and model_name:
            self.record_histogram("tutor_latency_ms", latency_ms, labels={"model": model_name})
            self.set_gauge("last_tutor_latency_ms", latency_ms)

        logger.info(
            f"Tutor request finished: {outcome}",
            extra={
                "success": outcome == "success",
                "latency_ms": latency_ms,
                "model": model_name,
            }
        )
