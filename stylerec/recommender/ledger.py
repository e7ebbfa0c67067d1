"""Append-only ledger of user-product interactions.

The ledger validates and stores interaction events, computes their weighted
scores, and notifies listeners after each append so downstream caches can be
invalidated. Batch jobs read from an immutable snapshot and never hold the
ingestion lock.
"""

import itertools
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from stylerec.exceptions import ValidationError
from stylerec.recommender.models import (
    RATING_MAX,
    RATING_MIN,
    InteractionEvent,
    InteractionType,
    weighted_score,
)

# Configure module logger
logger = logging.getLogger(__name__)

InteractionListener = Callable[[InteractionEvent], None]
PreferenceVectors = Dict[int, Dict[int, float]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(timestamp: datetime) -> datetime:
    """Return ``timestamp`` in UTC, reading naive values as UTC wall time."""
    if timestamp.tzinfo is None or timestamp.utcoffset() is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


class InteractionLedger:
    """Thread-safe append-only store of interaction events."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._events: List[InteractionEvent] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._listeners: List[InteractionListener] = []

    def subscribe(self, listener: InteractionListener) -> None:
        """Register a callback invoked after every recorded event."""
        self._listeners.append(listener)

    def record(self, event: InteractionEvent) -> int:
        """Validate and append an event.

        Args:
            event: Event to store. Its ``event_id`` is assigned here and its
                timestamp is stored in UTC.

        Returns:
            The id of the stored event.

        Raises:
            ValidationError: If the user or product id is missing, the
                timestamp is not a datetime, or a RATING event carries no
                value or a value outside [1.0, 5.0].
        """
        self._validate(event)

        with self._lock:
            event_id = next(self._ids)
            stored = InteractionEvent(
                user_id=event.user_id,
                product_id=event.product_id,
                interaction_type=event.interaction_type,
                timestamp=as_utc(event.timestamp),
                value=None if event.value is None else float(event.value),
                session_id=event.session_id,
                event_id=event_id,
            )
            self._events.append(stored)

        logger.debug(
            "Interaction recorded",
            extra={
                "event_id": event_id,
                "user_id": stored.user_id,
                "product_id": stored.product_id,
                "interaction_type": stored.interaction_type.value,
            },
        )

        for listener in list(self._listeners):
            listener(stored)

        return event_id

    def record_interaction(
        self,
        user_id: Optional[int],
        product_id: Optional[int],
        interaction_type,
        value: Optional[float] = None,
        session_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> int:
        """Build an event from raw collaborator input and record it."""
        event = InteractionEvent(
            user_id=user_id,
            product_id=product_id,
            interaction_type=InteractionType.parse(interaction_type),
            timestamp=timestamp or self._clock(),
            value=value,
            session_id=session_id or str(uuid.uuid4()),
        )
        return self.record(event)

    def _validate(self, event: InteractionEvent) -> None:
        problems = {}
        if event.user_id is None:
            problems["user_id"] = "missing"
        if event.product_id is None:
            problems["product_id"] = "missing"
        if not isinstance(event.timestamp, datetime):
            problems["timestamp"] = f"not a datetime: {event.timestamp!r}"
        if not isinstance(event.interaction_type, InteractionType):
            problems["interaction_type"] = f"not an InteractionType: {event.interaction_type!r}"
        elif event.interaction_type == InteractionType.RATING:
            try:
                rating = None if event.value is None else float(event.value)
            except (TypeError, ValueError):
                rating = None
            if rating is None or not RATING_MIN <= rating <= RATING_MAX:
                problems["value"] = (
                    f"rating must be between {RATING_MIN} and {RATING_MAX}, got {event.value!r}"
                )

        if problems:
            logger.warning(
                "Rejected interaction event",
                extra={
                    "user_id": event.user_id,
                    "product_id": event.product_id,
                    "problems": problems,
                },
            )
            raise ValidationError("Invalid interaction event", details=problems)

    @staticmethod
    def weighted_score(event: InteractionEvent) -> float:
        return weighted_score(event)

    def interactions_for(self, user_id: int) -> Iterator[InteractionEvent]:
        """Yield a user's events in chronological order.

        Each call walks a fresh snapshot, so events recorded after the call
        starts are not included.
        """
        events = [event for event in self.snapshot() if event.user_id == user_id]
        events.sort(key=lambda event: (event.timestamp, event.event_id))
        for event in events:
            yield event

    def snapshot(self) -> Tuple[InteractionEvent, ...]:
        """Return an immutable copy of every recorded event."""
        with self._lock:
            return tuple(self._events)

    def product_ids_for(self, user_id: int) -> Set[int]:
        return {event.product_id for event in self.snapshot() if event.user_id == user_id}

    def user_ids(self) -> Set[int]:
        return {event.user_id for event in self.snapshot()}

    def product_ids(self) -> Set[int]:
        return {event.product_id for event in self.snapshot()}

    def __len__(self) -> int:
        return len(self._events)


def preference_vectors(events: Iterable[InteractionEvent]) -> PreferenceVectors:
    """Build sparse user -> product -> score vectors from events.

    An explicit rating wins over implicit interactions for the same product
    (the most recent rating if there are several). Without a rating, the
    weights of every interaction with the product are summed.
    """
    implicit: PreferenceVectors = {}
    ratings: Dict[Tuple[int, int], Tuple[datetime, int, float]] = {}

    for event in events:
        key = (event.user_id, event.product_id)
        if event.interaction_type == InteractionType.RATING:
            stamp = (event.timestamp, event.event_id or 0, float(event.value))
            if key not in ratings or stamp[:2] >= ratings[key][:2]:
                ratings[key] = stamp
            continue
        products = implicit.setdefault(event.user_id, {})
        products[event.product_id] = products.get(event.product_id, 0.0) + weighted_score(event)

    for (user_id, product_id), (_, _, rating) in ratings.items():
        implicit.setdefault(user_id, {})[product_id] = rating

    return implicit


def transpose_vectors(vectors: PreferenceVectors) -> PreferenceVectors:
    """Turn user-keyed vectors into product-keyed vectors over users."""
    transposed: PreferenceVectors = {}
    for user_id, products in vectors.items():
        for product_id, score in products.items():
            transposed.setdefault(product_id, {})[user_id] = score
    return transposed
