"""Metrics service for tracking recommendation serving.

Singleton service counting cache hits and misses, degraded (non-personalized)
responses, and the latency of recommendation requests.
"""

import threading
from typing import Dict


class MetricsService:
    """Singleton service for tracking API metrics.

    Thread-safe counters and latency tracking for recommendation requests.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(MetricsService, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize metrics counters."""
        if self._initialized:
            return

        self._lock = threading.Lock()
        self._reset_counters()
        self._initialized = True

    def _reset_counters(self) -> None:
        self._request_count = 0
        self._cache_hits = 0
        self._cache_misses = 0
        self._degraded_count = 0
        self._interactions_recorded = 0
        self._total_latency_ms = 0.0
        self._max_latency_ms = 0.0

    def record_request(self, latency_ms: float, from_cache: bool, degraded: bool) -> None:
        """Record a recommendation request.

        Args:
            latency_ms: Latency in milliseconds
            from_cache: Whether the list was served from the cache
            degraded: Whether the list fell back to trending
        """
        with self._lock:
            self._request_count += 1
            self._total_latency_ms += latency_ms
            self._max_latency_ms = max(self._max_latency_ms, latency_ms)
            if from_cache:
                self._cache_hits += 1
            else:
                self._cache_misses += 1
            if degraded:
                self._degraded_count += 1

    def record_interaction(self) -> None:
        with self._lock:
            self._interactions_recorded += 1

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with request count, cache hit/miss counts and ratio,
            degraded response count, recorded interactions and latency.
        """
        with self._lock:
            avg_latency = (
                self._total_latency_ms / self._request_count
                if self._request_count > 0
                else 0.0
            )
            lookups = self._cache_hits + self._cache_misses

            return {
                "request_count": self._request_count,
                "cache_hits": self._cache_hits,
                "cache_misses": self._cache_misses,
                "cache_hit_ratio": round(self._cache_hits / lookups, 4) if lookups else 0.0,
                "degraded_count": self._degraded_count,
                "interactions_recorded": self._interactions_recorded,
                "average_latency_ms": round(avg_latency, 2),
                "max_latency_ms": round(self._max_latency_ms, 2),
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._reset_counters()


# Global singleton instance
metrics_service = MetricsService()
