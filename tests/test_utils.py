"""Tests for data loading, matrix construction and similarity artifacts."""

from datetime import datetime, timezone

import pandas as pd
import pytest

from stylerec.recommender.models import (
    InteractionType,
    SimilarityMethod,
    UserSimilarityEdge,
)
from stylerec.recommender.store import product_similarity_store, user_similarity_store
from stylerec.recommender.utils import (
    build_interaction_matrix,
    check_artifacts_exist,
    events_to_frame,
    load_interactions_csv,
    load_product_catalog_csv,
    load_similarity_artifacts,
    save_similarity_artifacts,
)


@pytest.fixture
def interactions_csv(tmp_path):
    """Fixture writing a small interaction CSV, deliberately out of order."""
    df = pd.DataFrame(
        [
            {"user_id": 1, "product_id": 20, "interaction_type": "purchase", "value": None,
             "timestamp": "2026-01-03T10:00:00Z", "session_id": "s-2"},
            {"user_id": 1, "product_id": 10, "interaction_type": "rating", "value": 4.0,
             "timestamp": "2026-01-01T10:00:00Z", "session_id": "s-1"},
            {"user_id": 2, "product_id": 10, "interaction_type": "unknown", "value": None,
             "timestamp": "2026-01-02T10:00:00Z", "session_id": None},
        ]
    )
    path = tmp_path / "interactions.csv"
    df.to_csv(path, index=False)
    return path


def test_build_interaction_matrix():
    """Test that rows and columns follow sorted ids."""
    matrix, row_index, column_index = build_interaction_matrix(
        {2: {10: 5.0}, 1: {10: 1.0, 11: 4.0}}
    )

    assert matrix.shape == (2, 2)
    assert row_index == {1: 0, 2: 1}
    assert column_index == {10: 0, 11: 1}
    assert matrix[0, 1] == 4.0
    assert matrix[1, 0] == 5.0


def test_build_binary_matrix():
    """Test that a presence matrix marks every stored entry, even zero scores."""
    matrix, _, _ = build_interaction_matrix({1: {10: 0.0, 11: 3.0}}, binary=True)

    assert matrix.nnz == 2
    assert set(matrix.data) == {1.0}


def test_load_interactions_csv(interactions_csv):
    """Test parsing, ordering and optional columns."""
    events = load_interactions_csv(str(interactions_csv))

    assert [event.product_id for event in events] == [10, 10, 20]
    assert events[0].interaction_type == InteractionType.RATING
    assert events[0].value == 4.0
    assert events[0].timestamp == datetime(2026, 1, 1, 10, tzinfo=timezone.utc)
    assert events[1].interaction_type == InteractionType.VIEW
    assert events[1].session_id is None
    assert events[2].value is None
    assert all(event.event_id is None for event in events)


def test_load_interactions_csv_errors(tmp_path):
    """Test missing files and missing columns."""
    with pytest.raises(FileNotFoundError):
        load_interactions_csv(str(tmp_path / "nope.csv"))

    path = tmp_path / "bad.csv"
    pd.DataFrame([{"user_id": 1, "product_id": 2}]).to_csv(path, index=False)
    with pytest.raises(ValueError, match="missing required columns"):
        load_interactions_csv(str(path))


def test_events_to_frame(interactions_csv):
    df = events_to_frame(load_interactions_csv(str(interactions_csv)))

    assert len(df) == 3
    assert df["weighted_score"].tolist() == [4.0, 1.0, 10.0]
    assert df["interaction_type"].tolist() == ["rating", "view", "purchase"]


def test_load_product_catalog_csv(tmp_path):
    """Test that blank attributes are read as missing."""
    path = tmp_path / "catalog.csv"
    pd.DataFrame(
        [
            {"product_id": 1, "category": "dresses", "brand": "alder", "color": None},
            {"product_id": 2, "category": "shoes", "brand": None, "color": "red"},
        ]
    ).to_csv(path, index=False)

    catalog = load_product_catalog_csv(str(path))

    assert catalog[1].tokens() == frozenset({"category:dresses", "brand:alder"})
    assert catalog[2].brand is None
    assert catalog[2].color == "red"


def test_similarity_artifacts(tmp_path):
    """Test that edges survive a save and load with their method and timestamp."""
    computed_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    user_store = user_similarity_store()
    user_store.upsert(UserSimilarityEdge.create(4, 2, 0.75, SimilarityMethod.PEARSON, computed_at))

    assert not check_artifacts_exist(str(tmp_path))
    save_similarity_artifacts(user_store, product_similarity_store(), str(tmp_path))
    assert check_artifacts_exist(str(tmp_path))

    loaded_users, loaded_products = load_similarity_artifacts(str(tmp_path))
    edge = loaded_users.get(2, 4, SimilarityMethod.PEARSON)

    assert isinstance(edge, UserSimilarityEdge)
    assert edge.score == 0.75
    assert edge.computed_at == computed_at
    assert loaded_products.count() == 0
