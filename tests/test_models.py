"""Tests for the core recommendation records and enums."""

import pytest

from stylerec.recommender.models import (
    InteractionType,
    ProductAttributes,
    ProductSimilarityEdge,
    RecommendationType,
    SimilarityMethod,
    UserSimilarityEdge,
    canonical_pair,
)


def test_interaction_type_parse():
    """Test parsing by value, by name, and fallback for unknown names."""
    assert InteractionType.parse("purchase") == InteractionType.PURCHASE
    assert InteractionType.parse(" ADD_TO_CART ") == InteractionType.ADD_TO_CART
    assert InteractionType.parse("unknown") == InteractionType.VIEW
    assert InteractionType.parse(None) == InteractionType.VIEW


def test_recommendation_type_parse_rejects_unknown():
    """Test that recommendation types, unlike interaction types, are strict."""
    assert RecommendationType.parse("ITEM_BASED_CF") == RecommendationType.ITEM_BASED_CF
    with pytest.raises(ValueError):
        RecommendationType.parse("popular")


def test_edges_are_canonical(clock):
    """Test that edges always store the smaller id first."""
    edge = UserSimilarityEdge.create(9, 4, 0.5, SimilarityMethod.COSINE, clock.now)

    assert edge.pair == (4, 9)
    assert (edge.user_id_1, edge.user_id_2) == (4, 9)
    assert edge.other(4) == 9
    assert edge.other(9) == 4
    assert canonical_pair(3, 3) == (3, 3)

    product_edge = ProductSimilarityEdge.create(2, 1, 1.0, SimilarityMethod.JACCARD, clock.now)
    assert (product_edge.product_id_1, product_edge.product_id_2) == (1, 2)


def test_product_attribute_tokens():
    """Test that tokens are field-qualified, lower-cased, and skip blanks."""
    attributes = ProductAttributes(
        product_id=1, category="Dresses", brand="Alder", color=" ", material=None
    )

    assert attributes.tokens() == frozenset({"category:dresses", "brand:alder"})
