# ==============================================================================
# == backend/safenet/monitoring.py - Health report & per-client rate limit  ==
# ==============================================================================

import logging
import time
from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Any, Dict, List

import psutil

logger = logging.getLogger(__name__)

MAX_ERROR_RATE_PERCENT = 5.0


def sample_host() -> Dict[str, Any]:
    """
    Host resource readings for the health report.

    psutil reads /proc and friends synchronously, so callers on the event loop
    should run this in the threadpool. cpu_percent(interval=None) compares
    against the previous call instead of sleeping; the first reading is 0.0.
    """
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage('/')
    return {
        'cpu_percent': psutil.cpu_percent(interval=None),
        'memory_percent': memory.percent,
        'memory_available_mb': memory.available // (1024 * 1024),
        'disk_percent': disk.percent,
        'disk_free_gb': disk.free // (1024 ** 3),
    }


class HealthMonitor:
    """Request counters and latencies, plus the healthy/degraded verdict."""

    def __init__(self, latency_window: int = 1000, error_window: int = 100):
        self.started_at = time.monotonic()
        self.request_count = 0
        self.error_count = 0
        self._latencies = deque(maxlen=latency_window)
        self._errors = deque(maxlen=error_window)

    def record_request(self, duration_ms: float):
        self.request_count += 1
        self._latencies.append(duration_ms)

    def record_error(self, error_type: str, details: str):
        self.error_count += 1
        self._errors.append({
            'timestamp': datetime.now().isoformat(),
            'type': error_type,
            'details': details,
        })

    @property
    def error_rate(self) -> float:
        if not self.request_count:
            return 0.0
        return self.error_count / self.request_count * 100

    def latency_summary(self) -> Dict[str, float]:
        if not self._latencies:
            return {'avg_ms': 0.0, 'p95_ms': 0.0}
        ordered = sorted(self._latencies)
        p95 = ordered[min(len(ordered) - 1, int(len(ordered) * 0.95))]
        return {
            'avg_ms': round(sum(ordered) / len(ordered), 2),
            'p95_ms': round(p95, 2),
        }

    def build_report(self, checks: Dict[str, bool], host: Dict[str, Any], **application) -> Dict[str, Any]:
        """
        Assemble the health report.

        `checks` are the service's own liveness conditions (store open,
        simulator running when enabled, ...). Any failing check, or an error
        rate at or above MAX_ERROR_RATE_PERCENT, makes the status 'degraded'.
        Host load is reported but does not decide the status.
        """
        failing = [name for name, ok in checks.items() if not ok]
        if self.error_rate >= MAX_ERROR_RATE_PERCENT:
            failing.append('error_rate')

        uptime = int(time.monotonic() - self.started_at)
        return {
            'status': 'degraded' if failing else 'healthy',
            'failing_checks': failing,
            'checks': checks,
            'uptime_seconds': uptime,
            'uptime_human': str(timedelta(seconds=uptime)),
            'system': host,
            'application': {
                'total_requests': self.request_count,
                'total_errors': self.error_count,
                'error_rate_percent': round(self.error_rate, 2),
                'latency': self.latency_summary(),
                **application,
            },
            'timestamp': datetime.now().isoformat(),
        }

    def get_recent_errors(self, limit: int = 10) -> List[dict]:
        return list(self._errors)[-limit:]


class RateLimiter:
    """At most `max_requests` per client inside a sliding `window_seconds`."""

    def __init__(self, max_requests: int = 100, window_seconds: int = 60, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, deque] = defaultdict(deque)

    def _prune(self, hits: deque, now: float):
        horizon = now - self.window_seconds
        while hits and hits[0] <= horizon:
            hits.popleft()

    def is_allowed(self, client: str) -> bool:
        now = self._clock()
        hits = self._hits[client]
        self._prune(hits, now)
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True

    def cleanup(self) -> int:
        """Drop clients idle for a whole window; returns how many were dropped."""
        now = self._clock()
        idle = []
        for client, hits in self._hits.items():
            self._prune(hits, now)
            if not hits:
                idle.append(client)
        for client in idle:
            del self._hits[client]
        return len(idle)

    @property
    def tracked_clients(self) -> int:
        return len(self._hits)
