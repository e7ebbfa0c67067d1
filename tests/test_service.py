"""Tests for the recommendation service: caching, invalidation and batch jobs."""

from datetime import timedelta

import pytest

from stylerec.config import RecommenderSettings
from stylerec.exceptions import (
    ArtifactLoadError,
    ArtifactsNotFoundError,
    RecommendationError,
    UnknownRecommendationTypeError,
    ValidationError,
)
from stylerec.recommender.models import (
    InteractionType,
    ProductAttributes,
    RecommendationType,
)
from stylerec.recommender.service import RecommendationService
from stylerec.recommender.utils import get_artifact_paths

PURCHASES = [(1, 1), (1, 2), (2, 1), (2, 2), (2, 3), (3, 4)]


def build_service(clock, **overrides) -> RecommendationService:
    """Create a service holding the standard purchase history and similarities."""
    service = RecommendationService(settings=RecommenderSettings(**overrides), clock=clock)
    for user_id, product_id in PURCHASES:
        service.record_interaction(user_id, product_id, "purchase")
    service.refresh_similarities()
    return service


@pytest.fixture
def service(clock):
    return build_service(clock)


def test_miss_then_hit(service):
    """Test that the second request for the same list is served from cache."""
    first = service.get_recommendations(1, "user_based_cf")
    second = service.get_recommendations(1, "user_based_cf")

    assert first.from_cache is False
    assert second.from_cache is True
    assert second.product_ids == first.product_ids == [3]
    assert second.personalized is True
    assert second.recommendation_type == RecommendationType.USER_BASED_CF


def test_cached_recommendations_carry_expiry(service, clock):
    """Test that served recommendations expire after the type's TTL."""
    result = service.get_recommendations(1, RecommendationType.HYBRID)

    assert result.recommendations[0].expires_at == clock.now + timedelta(hours=24)


def test_purchase_invalidates_cache(service):
    """Test that a purchase forces regeneration on the next request."""
    service.get_recommendations(1, RecommendationType.HYBRID)

    service.record_interaction(1, 3, "purchase")
    result = service.get_recommendations(1, RecommendationType.HYBRID)

    assert result.from_cache is False
    assert 3 not in result.product_ids


def test_view_does_not_invalidate_by_default(service):
    """Test that a browsing event leaves the cached list alone."""
    service.get_recommendations(1, RecommendationType.HYBRID)

    service.record_interaction(1, 4, "view")
    result = service.get_recommendations(1, RecommendationType.HYBRID)

    assert result.from_cache is True
    assert result.product_ids == [3]


def build_shared_taste_service(clock, *extra_products) -> RecommendationService:
    """User 2 bought 10, 11 and any extra products; user 1 bought only 10."""
    service = RecommendationService(clock=clock)
    for product_id in (10, 11) + extra_products:
        service.record_interaction(2, product_id, "purchase")
    service.record_interaction(1, 10, "purchase")
    service.refresh_similarities()
    return service


def test_cached_list_drops_products_touched_since(clock):
    """Test that a non-invalidating interaction still removes the product from a cached list."""
    service = build_shared_taste_service(clock, 12)
    assert service.get_recommendations(1, "user_based_cf").product_ids == [11, 12]

    service.record_interaction(1, 11, "add_to_cart")
    result = service.get_recommendations(1, "user_based_cf")

    assert result.from_cache is True
    assert result.product_ids == [12]


def test_fully_stale_cached_list_is_regenerated(clock):
    """Test that a cached list whose every product was touched since is not served."""
    service = build_shared_taste_service(clock)
    assert service.get_recommendations(1, "user_based_cf").product_ids == [11]

    service.record_interaction(1, 11, "add_to_cart")
    result = service.get_recommendations(1, "user_based_cf")

    assert result.from_cache is False
    assert 11 not in result.product_ids


def test_purchase_during_generation_is_not_overwritten(clock, monkeypatch):
    """Test that a list generated before a purchase is not cached after the purchase invalidated."""
    service = build_shared_taste_service(clock)
    original = service.generator.generate

    def purchase_mid_generation(user_id, *args, **kwargs):
        result = original(user_id, *args, **kwargs)
        service.record_interaction(1, 11, "purchase")
        return result

    monkeypatch.setattr(service.generator, "generate", purchase_mid_generation)
    assert service.get_recommendations(1, "user_based_cf").product_ids == [11]
    monkeypatch.setattr(service.generator, "generate", original)

    result = service.get_recommendations(1, "user_based_cf")

    assert result.from_cache is False
    assert 11 not in result.product_ids
    assert len(service.cache) == 0


def test_precompute_skips_lists_invalidated_mid_run(clock, monkeypatch):
    """Test that the batch job does not cache a list over a concurrent purchase."""
    service = build_shared_taste_service(clock)
    original = service.generator.generate

    def purchase_mid_generation(user_id, *args, **kwargs):
        result = original(user_id, *args, **kwargs)
        if user_id == 1:
            service.record_interaction(1, 11, "purchase")
        return result

    service.record_interaction(3, 12, "purchase")
    monkeypatch.setattr(service.generator, "generate", purchase_mid_generation)
    service.precompute_recommendations([1, 2], RecommendationType.USER_BASED_CF)

    assert service.cache.get(1, RecommendationType.USER_BASED_CF) is None
    assert service.cache.get(2, RecommendationType.USER_BASED_CF) is not None


def test_naive_timestamps_do_not_break_trending(service, clock):
    """Test that an event recorded with a naive timestamp still allows trending fallbacks."""
    naive = clock.now.replace(tzinfo=None)
    service.record_interaction(5, 4, "purchase", timestamp=naive)
    service.record_interaction(6, 4, "purchase", timestamp=naive)

    result = service.get_recommendations(99, "user_based_cf")

    assert result.recommendation_type == RecommendationType.TRENDING
    assert result.product_ids[0] == 4


def test_rating_invalidation_is_configurable(clock):
    """Test that extra invalidating types can be configured; purchases always invalidate."""
    service = build_service(clock, invalidate_on={InteractionType.RATING})
    assert InteractionType.PURCHASE in service.settings.invalidate_on

    service.get_recommendations(1, RecommendationType.HYBRID)
    service.record_interaction(1, 3, "rating", value=4.0)

    assert service.get_recommendations(1, RecommendationType.HYBRID).from_cache is False


def test_degraded_list_is_cached_with_trending_ttl(service, clock):
    """Test that a cold-start list is cached under the requested type for the trending TTL."""
    first = service.get_recommendations(99, RecommendationType.HYBRID)
    cached = service.get_recommendations(99, RecommendationType.HYBRID)

    assert first.recommendation_type == RecommendationType.TRENDING
    assert first.personalized is False
    assert cached.from_cache is True
    assert cached.recommendation_type == RecommendationType.TRENDING
    assert cached.personalized is False
    assert cached.note

    clock.advance(hours=2)
    assert service.get_recommendations(99, RecommendationType.HYBRID).from_cache is False


def test_limit_slices_cached_list(service):
    """Test that a smaller limit on a cache hit returns a prefix of the cached list."""
    full = service.get_recommendations(99, RecommendationType.TRENDING, limit=4)
    short = service.get_recommendations(99, RecommendationType.TRENDING, limit=2)

    assert short.from_cache is True
    assert short.product_ids == full.product_ids[:2]


def test_invalid_requests(service):
    """Test unknown types, negative limits and SIMILAR_ITEMS for users."""
    with pytest.raises(UnknownRecommendationTypeError):
        service.get_recommendations(1, "bestsellers")
    with pytest.raises(ValidationError):
        service.get_recommendations(1, RecommendationType.HYBRID, limit=-1)
    with pytest.raises(ValidationError):
        service.get_recommendations(1, RecommendationType.SIMILAR_ITEMS)


def test_generation_failure_is_wrapped(service, monkeypatch):
    """Test that unexpected generator errors surface as RecommendationError."""

    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(service.generator, "generate", broken)

    with pytest.raises(RecommendationError) as exc_info:
        service.get_recommendations(1, RecommendationType.HYBRID)

    assert exc_info.value.details["error_type"] == "RuntimeError"
    assert len(service.cache) == 0


def test_similar_products(service):
    """Test the product-keyed neighbor lookup."""
    similar = service.get_similar_products(1)

    assert [rec.product_id for rec in similar] == [2, 3]


def test_refresh_includes_content_when_catalog_present(service):
    """Test that registering a catalog adds a content similarity run."""
    service.register_products(
        [
            ProductAttributes(20, category="jeans", color="blue"),
            ProductAttributes(21, category="jeans", color="black"),
        ]
    )

    reports = service.refresh_similarities()

    assert [report.method.value for report in reports] == ["cosine", "cosine", "content"]
    assert [rec.product_id for rec in service.get_similar_products(20)] == [21]


def test_precompute_fills_cache(service):
    """Test that the batch job caches a list for every known user."""
    report = service.precompute_recommendations()

    assert report.users_requested == 3
    assert report.users_generated == 3
    assert report.users_failed == 0
    for user_id in (1, 2, 3):
        assert service.get_recommendations(user_id).from_cache is True


def test_precompute_isolates_failures(service, monkeypatch):
    """Test that one failing user does not stop the batch."""
    original = service.generator.generate

    def flaky(user_id, *args, **kwargs):
        if user_id == 2:
            raise RuntimeError("bad user")
        return original(user_id, *args, **kwargs)

    monkeypatch.setattr(service.generator, "generate", flaky)

    report = service.precompute_recommendations()

    assert report.users_generated == 2
    assert report.failed_user_ids == [2]


def test_sweep_cache(service, clock):
    """Test that the eager sweep drops entries past their TTL."""
    service.get_recommendations(1, RecommendationType.HYBRID)
    service.get_recommendations(99, RecommendationType.TRENDING)

    clock.advance(hours=2)

    assert service.sweep_cache() == 1
    assert len(service.cache) == 1


def test_artifacts_round_trip(service, clock, tmp_path):
    """Test that saved edges load into a fresh service."""
    service.save_artifacts(str(tmp_path))

    restored = RecommendationService(clock=clock)
    restored.load_artifacts(str(tmp_path))

    assert restored.user_store.count() == service.user_store.count()
    assert restored.product_store.count() == service.product_store.count()


def test_missing_artifacts(service, tmp_path):
    with pytest.raises(ArtifactsNotFoundError) as exc_info:
        service.load_artifacts(str(tmp_path / "missing"))

    assert exc_info.value.status_code == 503


def test_corrupt_artifacts(service, tmp_path):
    """Test that unreadable artifacts raise ArtifactLoadError."""
    for path in get_artifact_paths(str(tmp_path)):
        path.write_bytes(b"not a joblib file")

    with pytest.raises(ArtifactLoadError):
        service.load_artifacts(str(tmp_path))


def test_status(service):
    status = service.status()

    assert status["num_events"] == 6
    assert status["num_users"] == 3
    assert status["num_products"] == 4
    assert status["user_similarity_edges"] == 1
    assert status["product_similarity_edges"] == 3


def test_reloading_artifacts_replaces_edges(service, clock, tmp_path):
    """Test that edges absent from the reloaded artifacts are gone afterwards."""
    empty = RecommendationService(clock=clock)
    empty.save_artifacts(str(tmp_path))

    service.load_artifacts(str(tmp_path))

    assert service.user_store.count() == 0
    assert service.product_store.count() == 0


def test_homepage_recommendations(service):
    """Test that anonymous visitors get trending products and signed-in users a hybrid list."""
    anonymous = service.get_homepage_recommendations(None, limit=2)
    signed_in = service.get_homepage_recommendations(1)

    assert anonymous.user_id is None
    assert anonymous.recommendation_type == RecommendationType.TRENDING
    assert anonymous.product_ids == [1, 2]
    assert service.get_homepage_recommendations(None, limit=2).from_cache is True
    assert signed_in.requested_type == RecommendationType.HYBRID
    assert signed_in.product_ids == [3]


def test_explain_recommendation(service):
    """Test the reason given for each recommendation type."""
    assert service.explain_recommendation(1, 3, "user_based_cf") == "1 similar user liked this product"
    assert service.explain_recommendation(1, 3, "item_based_cf") == (
        "Similar to product 1 you interacted with before"
    )
    assert service.explain_recommendation(1, 3) == "Similar to product 1 you interacted with before"
    assert service.explain_recommendation(1, 4, "user_based_cf") == "Recommended based on your preferences"
    assert service.explain_recommendation(1, 4, "item_based_cf") == (
        "Customers who bought similar items also bought this"
    )
    with pytest.raises(UnknownRecommendationTypeError):
        service.explain_recommendation(1, 3, "bestsellers")


def test_also_viewed(service):
    """Test that other shoppers' products are ranked by how many shoppers touched them."""
    also_viewed = service.get_also_viewed(1)

    assert [rec.product_id for rec in also_viewed] == [2, 3]
    assert [rec.confidence_score for rec in also_viewed] == [1.0, 0.5]
    assert service.get_also_viewed(4) == []


def test_frequently_bought_together(service):
    """Test that co-occurrence edges back the bought-together lookup."""
    assert service.get_frequently_bought_together(1) == []

    report = service.refresh_cooccurrence()
    together = service.get_frequently_bought_together(1)

    assert report.method.value == "co_occurrence"
    assert report.edges_written == 3
    assert [rec.product_id for rec in together] == [2, 3]
    assert together[0].confidence_score == 1.0
    assert together[1].confidence_score == pytest.approx(0.5)
