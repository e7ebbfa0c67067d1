"""Recommendation service: the boundary the storefront talks to.

Wires the interaction ledger, similarity stores and engine, generator and
cache together. Interactions come in through ``record_interaction``;
recommendations go out through ``get_recommendations``, the homepage and
the product-keyed lists (similar, also viewed, bought together). On a cache
miss the list is generated synchronously and cached; the cache itself never
computes.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from stylerec.config import RecommenderSettings
from stylerec.exceptions import (
    ArtifactLoadError,
    ArtifactsNotFoundError,
    RecommendationError,
    UnknownRecommendationTypeError,
    ValidationError,
)
from stylerec.recommender.cache import RecommendationCache
from stylerec.recommender.generator import RecommendationGenerator
from stylerec.recommender.ledger import InteractionLedger, utc_now
from stylerec.recommender.models import (
    PERSONALIZED_TYPES,
    InteractionEvent,
    ProductAttributes,
    Recommendation,
    RecommendationResult,
    RecommendationType,
    SimilarityMethod,
)
from stylerec.recommender.similarity import SimilarityEngine, SimilarityRunReport
from stylerec.recommender.store import (
    SimilarityStore,
    product_similarity_store,
    user_similarity_store,
)
from stylerec.recommender.utils import (
    check_artifacts_exist,
    load_similarity_artifacts,
    save_similarity_artifacts,
)

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class BatchRunReport:
    """Outcome of a batch recommendation precompute."""

    recommendation_type: RecommendationType
    users_requested: int = 0
    users_generated: int = 0
    users_failed: int = 0
    failed_user_ids: List[int] = field(default_factory=list)
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["recommendation_type"] = self.recommendation_type.value
        return data


class RecommendationService:
    """Facade over the recommendation subsystem."""

    def __init__(
        self,
        settings: Optional[RecommenderSettings] = None,
        ledger: Optional[InteractionLedger] = None,
        cache: Optional[RecommendationCache] = None,
        user_store: Optional[SimilarityStore] = None,
        product_store: Optional[SimilarityStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or RecommenderSettings()
        self.ledger = ledger or InteractionLedger(clock=clock)
        self.cache = cache or RecommendationCache(clock=clock)
        self.user_store = user_store or user_similarity_store()
        self.product_store = product_store or product_similarity_store()
        self.catalog: Dict[int, ProductAttributes] = {}
        self.engine = SimilarityEngine(
            self.user_store, self.product_store, self.settings, clock=clock
        )
        self.generator = RecommendationGenerator(
            self.ledger, self.user_store, self.product_store, self.settings, clock=clock
        )
        self.ledger.subscribe(self._on_interaction)

    def _on_interaction(self, event: InteractionEvent) -> None:
        if event.interaction_type in self.settings.invalidate_on:
            self.cache.invalidate(event.user_id)

    # Inbound

    def record_interaction(
        self,
        user_id: Optional[int],
        product_id: Optional[int],
        interaction_type,
        value: Optional[float] = None,
        session_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> int:
        """Record a storefront interaction. Returns the stored event id.

        Raises:
            ValidationError: If the event is malformed.
        """
        return self.ledger.record_interaction(
            user_id, product_id, interaction_type, value, session_id, timestamp
        )

    def register_products(self, products: Iterable[ProductAttributes]) -> int:
        """Add or replace catalog attributes used for content similarity."""
        count = 0
        for attributes in products:
            self.catalog[attributes.product_id] = attributes
            count += 1
        return count

    # Outbound

    def get_recommendations(
        self,
        user_id: int,
        rec_type=RecommendationType.HYBRID,
        limit: Optional[int] = None,
    ) -> RecommendationResult:
        """Serve recommendations for a user, generating them on a cache miss.

        Args:
            user_id: Target user.
            rec_type: Recommendation type (enum or name).
            limit: Maximum number of recommendations to return.

        Returns:
            RecommendationResult; ``from_cache`` tells whether it was a hit.

        Raises:
            UnknownRecommendationTypeError: If ``rec_type`` is not a known type.
            ValidationError: If SIMILAR_ITEMS is requested for a user.
            RecommendationError: If generation fails unexpectedly.
        """
        rec_type = self.parse_type(rec_type)
        limit = limit or self.settings.default_limit
        if limit < 1:
            raise ValidationError("limit must be positive", details={"limit": limit})

        cached = self.cache.get(user_id, rec_type)
        if cached and rec_type in PERSONALIZED_TYPES:
            # Products the user interacted with after caching are dropped here.
            seen = self.ledger.product_ids_for(user_id)
            cached = [rec for rec in cached if rec.product_id not in seen] or None
        if cached is not None:
            actual_type = cached[0].recommendation_type if cached else rec_type
            logger.debug(
                "Serving cached recommendations",
                extra={"user_id": user_id, "recommendation_type": rec_type.value},
            )
            return RecommendationResult(
                user_id=user_id,
                requested_type=rec_type,
                recommendation_type=actual_type,
                recommendations=cached[:limit],
                personalized=actual_type in PERSONALIZED_TYPES,
                note=None if actual_type == rec_type else "Personalization was not possible",
                from_cache=True,
            )

        generation = self.cache.generation(user_id)
        try:
            result = self.generator.generate(
                user_id, rec_type, max(limit, self.settings.max_cached_items)
            )
        except ValidationError:
            raise
        except Exception as e:
            logger.error(
                "Recommendation generation failed",
                extra={"user_id": user_id, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            raise RecommendationError(user_id, e) from e

        if result.recommendations:
            result.recommendations = self.cache.put(
                user_id,
                rec_type,
                result.recommendations,
                self.settings.ttl_for(result.recommendation_type),
                generation=generation,
            )
        result.recommendations = result.recommendations[:limit]
        return result

    def get_homepage_recommendations(
        self, user_id: Optional[int] = None, limit: Optional[int] = None
    ) -> RecommendationResult:
        """HYBRID recommendations for a signed-in user, TRENDING for anonymous visitors.

        The anonymous trending list is cached under user ``None``.
        """
        if user_id is None:
            return self.get_recommendations(None, RecommendationType.TRENDING, limit)
        return self.get_recommendations(user_id, RecommendationType.HYBRID, limit)

    def explain_recommendation(
        self, user_id: int, product_id: int, rec_type=RecommendationType.HYBRID
    ) -> str:
        """Short human-readable reason why ``product_id`` suits ``user_id``."""
        return self.generator.explain(user_id, product_id, self.parse_type(rec_type))

    def get_similar_products(self, product_id: int, limit: Optional[int] = None) -> List[Recommendation]:
        """Nearest neighbors of a product, best first."""
        limit = limit or self.settings.default_limit
        return self.generator.similar_items(product_id, limit).recommendations

    def get_frequently_bought_together(
        self, product_id: int, limit: Optional[int] = None
    ) -> List[Recommendation]:
        """Products most often bought or carted by the same users, from CO_OCCURRENCE edges."""
        limit = limit or self.settings.default_limit
        return self.generator.similar_items(
            product_id, limit, method=SimilarityMethod.CO_OCCURRENCE
        ).recommendations

    def get_also_viewed(self, product_id: int, limit: Optional[int] = None) -> List[Recommendation]:
        """Products that other shoppers of ``product_id`` also interacted with."""
        limit = limit or self.settings.default_limit
        return self.generator.also_viewed(product_id, limit).recommendations

    # Batch jobs

    def refresh_similarities(self) -> List[SimilarityRunReport]:
        """Recompute user, product and content similarities from a snapshot."""
        events = self.ledger.snapshot()
        logger.info("Starting similarity refresh", extra={"events": len(events)})

        reports = [
            self.engine.compute_user_similarities(events),
            self.engine.compute_product_similarities(events),
        ]
        if self.catalog:
            reports.append(self.engine.compute_content_similarities(dict(self.catalog)))
        return reports

    def refresh_cooccurrence(self) -> SimilarityRunReport:
        """Recompute "frequently bought together" edges from a snapshot."""
        return self.engine.compute_cooccurrence_similarities(self.ledger.snapshot())

    def precompute_recommendations(
        self,
        user_ids: Optional[Iterable[int]] = None,
        rec_type=RecommendationType.HYBRID,
    ) -> BatchRunReport:
        """Generate and cache recommendations for many users.

        A failure for one user is logged and counted; the rest of the batch
        still runs.
        """
        start_time = time.time()
        rec_type = self.parse_type(rec_type)
        user_ids = sorted(self.ledger.user_ids() if user_ids is None else set(user_ids))
        report = BatchRunReport(recommendation_type=rec_type, users_requested=len(user_ids))

        def generate_for(user_id: int) -> Optional[int]:
            generation = self.cache.generation(user_id)
            try:
                result = self.generator.generate(user_id, rec_type, self.settings.max_cached_items)
            except Exception as e:
                logger.warning(
                    "Failed to precompute recommendations",
                    extra={"user_id": user_id, "error": str(e), "error_type": type(e).__name__},
                )
                return user_id
            if result.recommendations:
                self.cache.put(
                    user_id,
                    rec_type,
                    result.recommendations,
                    self.settings.ttl_for(result.recommendation_type),
                    generation=generation,
                )
            return None

        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            for failed_user in executor.map(generate_for, user_ids):
                if failed_user is None:
                    report.users_generated += 1
                else:
                    report.users_failed += 1
                    report.failed_user_ids.append(failed_user)

        report.duration_ms = round((time.time() - start_time) * 1000, 2)
        logger.info("Batch recommendations completed", extra=report.to_dict())
        return report

    def sweep_cache(self) -> int:
        return self.cache.sweep_expired()

    # Artifacts

    def save_artifacts(self, model_dir: Optional[str] = None) -> None:
        save_similarity_artifacts(
            self.user_store, self.product_store, model_dir or self.settings.model_dir
        )

    def load_artifacts(self, model_dir: Optional[str] = None) -> None:
        """Load stored similarity edges into this service's stores.

        Raises:
            ArtifactsNotFoundError: If the artifacts do not exist.
            ArtifactLoadError: If they exist but cannot be read.
        """
        model_dir = model_dir or self.settings.model_dir
        if not check_artifacts_exist(model_dir):
            raise ArtifactsNotFoundError(model_dir)
        try:
            load_similarity_artifacts(model_dir, self.user_store, self.product_store)
        except Exception as e:
            logger.error(f"Failed to load artifacts: {e}", exc_info=True)
            raise ArtifactLoadError(model_dir, e) from e

    def status(self) -> Dict[str, int]:
        return {
            "num_events": len(self.ledger),
            "num_users": len(self.ledger.user_ids()),
            "num_products": len(self.ledger.product_ids()),
            "num_catalog_products": len(self.catalog),
            "user_similarity_edges": self.user_store.count(),
            "product_similarity_edges": self.product_store.count(),
            "cached_entries": len(self.cache),
        }

    @staticmethod
    def parse_type(rec_type) -> RecommendationType:
        try:
            return RecommendationType.parse(rec_type)
        except ValueError:
            raise UnknownRecommendationTypeError(str(rec_type)) from None
