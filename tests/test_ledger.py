"""Tests for the interaction ledger and preference vectors."""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta, timezone

import pytest

from stylerec.exceptions import ValidationError
from stylerec.recommender.ledger import (
    InteractionLedger,
    preference_vectors,
    transpose_vectors,
)
from stylerec.recommender.models import InteractionType


@pytest.fixture
def ledger(clock):
    """Fixture providing an empty ledger on the fake clock."""
    return InteractionLedger(clock=clock)


@pytest.mark.parametrize(
    "interaction_type,expected",
    [
        ("view", 1.0),
        ("wishlist", 2.0),
        ("add_to_cart", 3.0),
        ("purchase", 10.0),
    ],
)
def test_weighted_score_uses_type_weight(ledger, interaction_type, expected):
    """Test that implicit interactions score the fixed weight of their type."""
    ledger.record_interaction(1, 1, interaction_type)
    event = ledger.snapshot()[0]

    assert ledger.weighted_score(event) == expected
    assert event.weighted_score == expected


def test_rating_scores_its_value(ledger):
    """Test that a rating event scores the rating itself, not the base weight."""
    ledger.record_interaction(1, 1, "rating", value=3.5)

    assert ledger.snapshot()[0].weighted_score == 3.5


@pytest.mark.parametrize("value", [None, 0.5, 6.0])
def test_invalid_rating_is_rejected(ledger, value):
    """Test that ratings outside [1, 5] or without a value are not stored."""
    with pytest.raises(ValidationError) as exc_info:
        ledger.record_interaction(1, 1, "rating", value=value)

    assert "value" in exc_info.value.details
    assert exc_info.value.status_code == 400
    assert len(ledger) == 0


def test_missing_ids_are_rejected(ledger):
    """Test that events without a user or product id are rejected."""
    with pytest.raises(ValidationError) as exc_info:
        ledger.record_interaction(None, None, "view")

    assert exc_info.value.details == {"user_id": "missing", "product_id": "missing"}
    assert len(ledger) == 0


def test_unknown_type_is_recorded_as_view(ledger):
    """Test that an unrecognised interaction type falls back to VIEW."""
    ledger.record_interaction(1, 1, "zoom")

    assert ledger.snapshot()[0].interaction_type == InteractionType.VIEW


def test_record_assigns_ids_and_defaults(ledger, clock):
    """Test that ids increase from 1 and timestamp/session default sensibly."""
    first = ledger.record_interaction(1, 10, "view")
    second = ledger.record_interaction(1, 11, "view", session_id="s-1")

    assert (first, second) == (1, 2)
    events = ledger.snapshot()
    assert events[0].timestamp == clock.now
    assert events[0].session_id
    assert events[1].session_id == "s-1"


def test_timestamps_are_stored_in_utc(ledger, clock):
    """Test that naive and offset timestamps are normalized so histories stay comparable."""
    plus_two = timezone(timedelta(hours=2))
    ledger.record_interaction(1, 10, "view", timestamp=clock.now.replace(tzinfo=None))
    ledger.record_interaction(1, 20, "view", timestamp=clock.now.astimezone(plus_two))
    ledger.record_interaction(1, 30, "view", timestamp=clock.now - timedelta(hours=1))

    events = ledger.snapshot()
    assert all(event.timestamp.utcoffset() == timedelta(0) for event in events)
    assert events[0].timestamp == events[1].timestamp == clock.now
    assert [event.product_id for event in ledger.interactions_for(1)] == [30, 10, 20]


def test_non_datetime_timestamp_is_rejected(ledger):
    with pytest.raises(ValidationError) as exc_info:
        ledger.record_interaction(1, 10, "view", timestamp="yesterday")

    assert "timestamp" in exc_info.value.details
    assert len(ledger) == 0


def test_interactions_for_is_chronological(ledger, clock):
    """Test that a user's history comes back oldest first regardless of arrival order."""
    ledger.record_interaction(1, 30, "view", timestamp=clock.now)
    ledger.record_interaction(1, 10, "view", timestamp=clock.now - timedelta(days=2))
    ledger.record_interaction(2, 99, "view", timestamp=clock.now - timedelta(days=5))
    ledger.record_interaction(1, 20, "view", timestamp=clock.now - timedelta(days=1))

    history = list(ledger.interactions_for(1))

    assert [event.product_id for event in history] == [10, 20, 30]
    assert ledger.product_ids_for(1) == {10, 20, 30}
    assert ledger.user_ids() == {1, 2}


def test_listener_receives_stored_event(ledger):
    """Test that subscribers see every accepted event with its assigned id."""
    received = []
    ledger.subscribe(received.append)

    ledger.record_interaction(7, 70, "purchase")
    with pytest.raises(ValidationError):
        ledger.record_interaction(7, 70, "rating", value=9.0)

    assert len(received) == 1
    assert received[0].event_id == 1
    assert received[0].interaction_type == InteractionType.PURCHASE


def test_concurrent_recording_keeps_every_event(ledger):
    """Test that parallel writers never lose or duplicate events."""

    def record(i):
        return ledger.record_interaction(i % 10, i % 7, "view")

    with ThreadPoolExecutor(max_workers=8) as executor:
        ids = list(executor.map(record, range(400)))

    assert len(ledger) == 400
    assert sorted(ids) == list(range(1, 401))


def test_preference_vectors_sum_implicit_weights(ledger):
    """Test that implicit interactions with the same product accumulate."""
    ledger.record_interaction(1, 10, "view")
    ledger.record_interaction(1, 10, "add_to_cart")
    ledger.record_interaction(1, 11, "purchase")

    vectors = preference_vectors(ledger.snapshot())

    assert vectors == {1: {10: 4.0, 11: 10.0}}


def test_preference_vectors_latest_rating_wins(ledger, clock):
    """Test that an explicit rating overrides implicit weight, latest rating first."""
    ledger.record_interaction(1, 10, "purchase")
    ledger.record_interaction(1, 10, "rating", value=2.0, timestamp=clock.now - timedelta(hours=1))
    ledger.record_interaction(1, 10, "rating", value=4.0, timestamp=clock.now)

    vectors = preference_vectors(ledger.snapshot())

    assert vectors[1][10] == 4.0


def test_transpose_vectors():
    """Test that transposing turns user vectors into product vectors."""
    vectors = {1: {10: 1.0, 11: 2.0}, 2: {10: 3.0}}

    assert transpose_vectors(vectors) == {10: {1: 1.0, 2: 3.0}, 11: {1: 2.0}}
