"""Request latency logging middleware for performance monitoring."""

import logging
import re
import time
from collections import defaultdict
from functools import lru_cache
from typing import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

# Thresholds for log levels (in milliseconds)
SLOW_REQUEST_THRESHOLD_MS = 1000
VERY_SLOW_REQUEST_THRESHOLD_MS = 3000

HEALTH_PATHS = ("/health", "/health/ready")

_ID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}|(?:RET|CAN)-[0-9A-F]+",
    re.IGNORECASE,
)


class LatencyStats:
    """In-memory latency samples, bounded to the most recent requests."""

    def __init__(self, max_samples: int = 1000) -> None:
        self._samples: list[tuple[str, float]] = []
        self._max_samples = max_samples

    def record(self, path: str, latency_ms: float) -> None:
        self._samples.append((normalize_path(path), latency_ms))
        if len(self._samples) > self._max_samples:
            self._samples = self._samples[-self._max_samples:]

    def get_stats_by_path(self) -> dict[str, dict[str, float]]:
        """Count, average and p95 latency per normalized path."""
        by_path: dict[str, list[float]] = defaultdict(list)
        for path, latency in self._samples:
            by_path[path].append(latency)

        result = {}
        for path, latencies in by_path.items():
            ordered = sorted(latencies)
            total = len(ordered)
            result[path] = {
                "count": total,
                "avg_ms": round(sum(ordered) / total, 2),
                "p95_ms": round(ordered[min(int(total * 0.95), total - 1)], 2),
            }
        return result


def normalize_path(path: str) -> str:
    """Replace item uuids and return/cancel references with {id}."""
    return _ID_PATTERN.sub("{id}", path)


@lru_cache
def get_latency_stats() -> LatencyStats:
    return LatencyStats()


async def latency_logging_with_stats_middleware(request: Request, call_next: Callable) -> Response:
    """Log each request's latency and record it for monitoring.

    Slow requests log at warning, very slow ones and server errors at error.
    """
    start_time = time.perf_counter()

    method = request.method
    path = request.url.path
    is_health_check = path in HEALTH_PATHS

    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        latency_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code if response else 500

        if not is_health_check:
            get_latency_stats().record(path, latency_ms)

        if is_health_check:
            logger.debug("%s %s - %d - %.2fms", method, path, status_code, latency_ms)
        elif status_code >= 500:
            logger.error("%s %s - %d - %.2fms", method, path, status_code, latency_ms)
        elif latency_ms > VERY_SLOW_REQUEST_THRESHOLD_MS:
            logger.error("VERY SLOW REQUEST: %s %s - %d - %.2fms", method, path, status_code, latency_ms)
        elif latency_ms > SLOW_REQUEST_THRESHOLD_MS:
            logger.warning("SLOW REQUEST: %s %s - %d - %.2fms", method, path, status_code, latency_ms)
        elif status_code >= 400:
            logger.warning("%s %s - %d - %.2fms", method, path, status_code, latency_ms)
        else:
            logger.info("%s %s - %d - %.2fms", method, path, status_code, latency_ms)
