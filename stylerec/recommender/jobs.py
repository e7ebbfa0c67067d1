"""Background batch jobs for the recommendation subsystem.

Runs the similarity refresh and, when configured, the co-occurrence refresh
and the eager cache sweep on fixed intervals. Each job runs on its own daemon
thread; a failing run is logged and the schedule carries on.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from stylerec.recommender.service import RecommendationService

# Configure module logger
logger = logging.getLogger(__name__)


class _PeriodicJob:
    def __init__(self, name: str, interval_seconds: float, func: Callable[[], object]):
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func
        self.runs = 0
        self.failures = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> bool:
        start_time = time.time()
        logger.info(f"Starting scheduled job {self.name}")
        try:
            self.func()
        except Exception as e:
            self.failures += 1
            logger.error(
                f"Scheduled job {self.name} failed",
                extra={"job": self.name, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            return False
        finally:
            self.runs += 1
        logger.info(
            f"Scheduled job {self.name} completed",
            extra={"job": self.name, "duration_ms": round((time.time() - start_time) * 1000, 2)},
        )
        return True

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name=f"recommendation-scheduler-{self.name}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


class BatchScheduler:
    """Schedules the service's periodic maintenance jobs.

    Intervals come from the service settings; a job whose interval is unset
    is not scheduled but can still be triggered with ``run_now``.
    """

    def __init__(self, service: RecommendationService):
        self.service = service
        settings = service.settings
        self.jobs: Dict[str, _PeriodicJob] = {}

        if settings.similarity_refresh_interval_seconds:
            self.jobs["similarities"] = _PeriodicJob(
                "similarities",
                settings.similarity_refresh_interval_seconds,
                service.refresh_similarities,
            )
        if settings.cooccurrence_refresh_interval_seconds:
            self.jobs["co_occurrence"] = _PeriodicJob(
                "co_occurrence",
                settings.cooccurrence_refresh_interval_seconds,
                service.refresh_cooccurrence,
            )
        if settings.cache_sweep_interval_seconds:
            self.jobs["cache_sweep"] = _PeriodicJob(
                "cache_sweep",
                settings.cache_sweep_interval_seconds,
                service.sweep_cache,
            )

    def start(self) -> List[str]:
        for job in self.jobs.values():
            job.start()
        if self.jobs:
            logger.info("Batch scheduler started", extra={"jobs": sorted(self.jobs)})
        return sorted(self.jobs)

    def stop(self, timeout: Optional[float] = 60.0) -> None:
        for job in self.jobs.values():
            job.stop(timeout)

    def run_now(self, name: str) -> bool:
        """Run one job immediately on the calling thread."""
        job = self.jobs.get(name)
        if job is None:
            func = {
                "similarities": self.service.refresh_similarities,
                "cache_sweep": self.service.sweep_cache,
                "co_occurrence": self.service.refresh_cooccurrence,
            }.get(name)
            if func is None:
                raise KeyError(f"Unknown job '{name}'")
            job = _PeriodicJob(name, 0, func)
        return job.run_once()
