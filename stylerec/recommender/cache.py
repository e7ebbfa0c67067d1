"""Expiring cache of generated recommendations.

The cache only stores and serves: it never computes recommendations. Expiry
is checked lazily on read, so an expired entry may still be held in memory
but is never returned. ``sweep_expired`` exists for deployments that want an
eager cleanup job.

Every invalidation of a user moves that user to a new generation. A list
generated before the invalidation carries the old generation and is dropped
by ``put`` instead of being cached over the invalidation.
"""

import itertools
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from stylerec.recommender.ledger import utc_now
from stylerec.recommender.models import Recommendation, RecommendationType

# Configure module logger
logger = logging.getLogger(__name__)

CacheKey = Tuple[int, RecommendationType]


@dataclass(frozen=True)
class _CacheEntry:
    recommendations: Tuple[Recommendation, ...]
    generated_at: datetime
    expires_at: Optional[datetime]
    invalidated: bool = False

    def is_expired(self, now: datetime) -> bool:
        if self.invalidated:
            return True
        return self.expires_at is not None and now >= self.expires_at


class RecommendationCache:
    """One current recommendation list per (user, recommendation type)."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._entries: Dict[CacheKey, _CacheEntry] = {}
        self._generations: Dict[int, int] = {}
        # Generation of users without a record; raised when records are swept.
        self._generation_floor = 0
        self._generation_ids = itertools.count(1)
        self._lock = threading.Lock()

    def generation(self, user_id: int) -> int:
        """Current invalidation generation of a user, for a later ``put``."""
        with self._lock:
            return self._generations.get(user_id, self._generation_floor)

    def get(self, user_id: int, rec_type: RecommendationType) -> Optional[List[Recommendation]]:
        """Return the cached list, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get((user_id, rec_type))
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            logger.debug(
                "Cached recommendations expired",
                extra={"user_id": user_id, "recommendation_type": rec_type.value},
            )
            return None
        return list(entry.recommendations)

    def put(
        self,
        user_id: int,
        rec_type: RecommendationType,
        recommendations: Sequence[Recommendation],
        ttl: Optional[timedelta],
        generation: Optional[int] = None,
    ) -> List[Recommendation]:
        """Replace the cached list for (user, type).

        Args:
            user_id: Owner of the list.
            rec_type: Requested recommendation type the list is cached under.
            recommendations: Ranked recommendations to store.
            ttl: Time to live. ``None`` explicitly means the entry never expires.
            generation: The user's generation read before the list was
                generated. If the user has been invalidated since, the list
                is returned but not stored.

        Returns:
            The recommendations, stamped with ``expires_at``.

        Raises:
            ValueError: If ``ttl`` is zero or negative.
        """
        if ttl is not None and ttl <= timedelta(0):
            raise ValueError(f"ttl must be positive or None, got {ttl}")

        now = self._clock()
        expires_at = now + ttl if ttl is not None else None
        stamped = tuple(
            replace(rec, generated_at=min(rec.generated_at, now), expires_at=expires_at)
            for rec in recommendations
        )

        with self._lock:
            current = self._generations.get(user_id, self._generation_floor)
            stale = generation is not None and generation != current
            if not stale:
                self._entries[(user_id, rec_type)] = _CacheEntry(
                    recommendations=stamped, generated_at=now, expires_at=expires_at
                )

        if stale:
            logger.info(
                "Discarded recommendations generated before an invalidation",
                extra={"user_id": user_id, "recommendation_type": rec_type.value},
            )
        else:
            logger.debug(
                "Cached recommendations",
                extra={
                    "user_id": user_id,
                    "recommendation_type": rec_type.value,
                    "count": len(stamped),
                    "expires_at": expires_at.isoformat() if expires_at else None,
                },
            )
        return list(stamped)

    def invalidate(self, user_id: int) -> int:
        """Expire every cached list of a user. Returns how many were live."""
        now = self._clock()
        invalidated = 0
        with self._lock:
            self._generations[user_id] = next(self._generation_ids)
            for key, entry in list(self._entries.items()):
                if key[0] != user_id or entry.is_expired(now):
                    continue
                self._entries[key] = replace(entry, invalidated=True)
                invalidated += 1

        if invalidated:
            logger.info(
                "Invalidated cached recommendations",
                extra={"user_id": user_id, "entries": invalidated},
            )
        return invalidated

    def invalidate_type(self, user_id: int, rec_type: RecommendationType) -> bool:
        key = (user_id, rec_type)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.invalidated:
                return False
            self._entries[key] = replace(entry, invalidated=True)
            return True

    def sweep_expired(self) -> int:
        """Drop expired entries from memory. Returns the number removed.

        Generation records of users left without entries are dropped too.
        """
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            live_users = {user_id for user_id, _ in self._entries}
            for user_id in [user_id for user_id in self._generations if user_id not in live_users]:
                self._generation_floor = max(self._generation_floor, self._generations.pop(user_id))
        logger.info(f"Swept {len(expired)} expired recommendation entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
