"""Recommendation generation module.

Ranks candidate products for a user from the interaction ledger and the
precomputed similarity edges. Supports user-based and item-based
collaborative filtering, a hybrid blend of the two, trending products,
product-keyed lookups (nearest neighbors, frequently bought together,
customers also viewed) and short explanations of a recommendation.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from stylerec.config import RecommenderSettings
from stylerec.exceptions import ValidationError
from stylerec.recommender.ledger import (
    InteractionLedger,
    PreferenceVectors,
    preference_vectors,
    utc_now,
)
from stylerec.recommender.models import (
    InteractionEvent,
    Recommendation,
    RecommendationResult,
    RecommendationType,
    SimilarityMethod,
    weighted_score,
)
from stylerec.recommender.store import SimilarityStore

# Configure module logger
logger = logging.getLogger(__name__)

NO_HISTORY_NOTE = "No interaction history or similar users; personalization was not possible"
NO_CANDIDATES_NOTE = "No collaborative candidates found; personalization was not possible"


@dataclass
class InteractionIndex:
    """Per-snapshot lookups shared by every scoring strategy."""

    events: Tuple[InteractionEvent, ...]
    vectors: PreferenceVectors
    popularity: Dict[int, int]

    @classmethod
    def build(cls, events: Iterable[InteractionEvent]) -> "InteractionIndex":
        events = tuple(events)
        popularity: Dict[int, int] = {}
        for event in events:
            popularity[event.product_id] = popularity.get(event.product_id, 0) + 1
        return cls(events=events, vectors=preference_vectors(events), popularity=popularity)


def normalize_by_max(scores: Dict[int, float]) -> Dict[int, float]:
    """Scale scores so the best one is 1.0."""
    if not scores:
        return {}
    top = max(scores.values())
    if top <= 0:
        return dict(scores)
    return {pid: score / top for pid, score in scores.items()}


class RecommendationGenerator:
    """Produces ranked, typed recommendations.

    Every call works on one snapshot of the ledger, so concurrent ingestion
    never blocks generation and never changes a list half-way through.
    """

    def __init__(
        self,
        ledger: InteractionLedger,
        user_store: SimilarityStore,
        product_store: SimilarityStore,
        settings: Optional[RecommenderSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.ledger = ledger
        self.user_store = user_store
        self.product_store = product_store
        self.settings = settings or RecommenderSettings()
        self._clock = clock

    def generate(
        self,
        user_id: int,
        rec_type=RecommendationType.HYBRID,
        limit: Optional[int] = None,
    ) -> RecommendationResult:
        """Generate recommendations of one type for a user.

        Falls back to TRENDING, with a note, when the user has neither
        interactions nor similar users, or when collaborative filtering finds
        no candidates.

        Args:
            user_id: Target user.
            rec_type: Requested recommendation type.
            limit: Maximum number of recommendations (default from settings).

        Returns:
            RecommendationResult whose ``recommendation_type`` tells which
            strategy actually produced the list.

        Raises:
            ValidationError: If SIMILAR_ITEMS is requested for a user.
        """
        start_time = time.time()
        rec_type = RecommendationType.parse(rec_type)
        limit = limit or self.settings.default_limit

        if rec_type == RecommendationType.SIMILAR_ITEMS:
            raise ValidationError(
                "SIMILAR_ITEMS is keyed by product; use similar_items(product_id)",
                details={"user_id": user_id},
            )

        index = InteractionIndex.build(self.ledger.snapshot())

        if rec_type == RecommendationType.TRENDING:
            ranked = self.rank(self.trending_scores(index.events), index.popularity, limit)
            return self._result(user_id, rec_type, rec_type, ranked, personalized=False)

        user_vector = index.vectors.get(user_id, {})
        has_neighbors = self.user_store.has_edges(user_id, self.settings.user_similarity_method)

        if not user_vector and not has_neighbors:
            logger.info(
                "User has no history, using trending",
                extra={"user_id": user_id, "strategy": "cold_start"},
            )
            ranked = self.rank(self.trending_scores(index.events), index.popularity, limit)
            return self._result(
                user_id, rec_type, RecommendationType.TRENDING, ranked,
                personalized=False, note=NO_HISTORY_NOTE,
            )

        if rec_type == RecommendationType.USER_BASED_CF:
            scores = self.user_based_scores(user_id, index)
        elif rec_type == RecommendationType.ITEM_BASED_CF:
            scores = self.item_based_scores(user_id, index)
        else:
            scores = self.hybrid_scores(user_id, index)

        seen = set(user_vector)
        scores = {pid: score for pid, score in scores.items() if pid not in seen}

        if not scores:
            logger.warning(
                "No collaborative candidates, using trending",
                extra={"user_id": user_id, "recommendation_type": rec_type.value},
            )
            trending = {
                pid: score
                for pid, score in self.trending_scores(index.events).items()
                if pid not in seen
            }
            ranked = self.rank(trending, index.popularity, limit)
            return self._result(
                user_id, rec_type, RecommendationType.TRENDING, ranked,
                personalized=False, note=NO_CANDIDATES_NOTE,
            )

        ranked = self.rank(scores, index.popularity, limit)
        logger.info(
            "Recommendations generated",
            extra={
                "user_id": user_id,
                "recommendation_type": rec_type.value,
                "num_candidates": len(scores),
                "num_recommendations": len(ranked),
                "total_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return self._result(user_id, rec_type, rec_type, ranked)

    def user_based_scores(self, user_id: int, index: InteractionIndex) -> Dict[int, float]:
        """Similarity-weighted neighbor scores for products the user has not seen.

        Each candidate scores ``sum(sim * neighbor_score) / sum(sim)`` where
        the denominator covers every neighbor consulted.
        """
        neighbors = self.user_store.neighbors(
            user_id,
            self.settings.user_similarity_method,
            self.settings.top_k_neighbors,
            positive_only=True,
        )
        if not neighbors:
            return {}

        seen = set(index.vectors.get(user_id, {}))
        weighted: Dict[int, float] = {}
        for neighbor_id, similarity in neighbors:
            for product_id, score in index.vectors.get(neighbor_id, {}).items():
                if product_id in seen:
                    continue
                weighted[product_id] = weighted.get(product_id, 0.0) + similarity * score

        similarity_total = sum(similarity for _, similarity in neighbors)
        return {pid: value / similarity_total for pid, value in weighted.items()}

    def item_based_scores(self, user_id: int, index: InteractionIndex) -> Dict[int, float]:
        """Sum of ``similarity * user's score for the source product`` per candidate."""
        user_vector = index.vectors.get(user_id, {})
        seen = set(user_vector)
        scores: Dict[int, float] = {}

        for source_id, user_score in sorted(user_vector.items()):
            if user_score <= 0:
                continue
            for candidate_id, similarity in self.product_neighbors(source_id):
                if candidate_id in seen:
                    continue
                scores[candidate_id] = scores.get(candidate_id, 0.0) + similarity * user_score

        return scores

    def hybrid_scores(self, user_id: int, index: InteractionIndex) -> Dict[int, float]:
        """Blend of user-based and item-based scores.

        Each side is scaled to a best score of 1.0 first. If only one side
        produced candidates, its scores are used alone.
        """
        user_scores = normalize_by_max(self.user_based_scores(user_id, index))
        item_scores = normalize_by_max(self.item_based_scores(user_id, index))

        if not user_scores:
            return item_scores
        if not item_scores:
            return user_scores

        user_weight = self.settings.hybrid_user_weight
        item_weight = 1.0 - user_weight
        return {
            pid: user_weight * user_scores.get(pid, 0.0) + item_weight * item_scores.get(pid, 0.0)
            for pid in set(user_scores) | set(item_scores)
        }

    def trending_scores(self, events: Sequence[InteractionEvent]) -> Dict[int, float]:
        """Aggregate interaction weight per product inside the trending window.

        Falls back to all-time weight when the window holds no events.
        """
        cutoff = self._clock() - self.settings.trending_window
        scores: Dict[int, float] = {}
        for event in events:
            if event.timestamp >= cutoff:
                scores[event.product_id] = scores.get(event.product_id, 0.0) + weighted_score(event)

        if not scores and events:
            logger.debug("Trending window empty, using all-time interaction weight")
            for event in events:
                scores[event.product_id] = scores.get(event.product_id, 0.0) + weighted_score(event)

        return scores

    def product_neighbors(self, product_id: int, k: Optional[int] = None) -> List[Tuple[int, float]]:
        """Top-K similar products, using CONTENT edges for cold-start items."""
        return self._product_neighbors(product_id, k or self.settings.top_k_neighbors)

    def _product_neighbors(self, product_id: int, k: Optional[int]) -> List[Tuple[int, float]]:
        method = self.settings.product_similarity_method
        neighbors = self.product_store.neighbors(product_id, method, k, positive_only=True)
        if (
            not neighbors
            and self.settings.content_fallback
            and method != SimilarityMethod.CONTENT
        ):
            neighbors = self.product_store.neighbors(
                product_id, SimilarityMethod.CONTENT, k, positive_only=True
            )
        return neighbors

    def similar_items(
        self,
        product_id: int,
        limit: Optional[int] = None,
        method: Optional[SimilarityMethod] = None,
    ) -> RecommendationResult:
        """Nearest neighbors of a product. Not personalized and not filtered.

        Args:
            product_id: Source product.
            limit: Maximum number of neighbors.
            method: Edge method to read. Defaults to the configured product
                method with the CONTENT fallback.
        """
        limit = limit or self.settings.default_limit
        if method is None:
            neighbors = self._product_neighbors(product_id, None)
        else:
            neighbors = self.product_store.neighbors(product_id, method, positive_only=True)
        index = InteractionIndex.build(self.ledger.snapshot())
        ranked = self.rank(dict(neighbors), index.popularity, limit)
        return self._result(
            None,
            RecommendationType.SIMILAR_ITEMS,
            RecommendationType.SIMILAR_ITEMS,
            ranked,
            personalized=False,
        )

    def also_viewed(self, product_id: int, limit: Optional[int] = None) -> RecommendationResult:
        """Products that shoppers of ``product_id`` also interacted with.

        Looks at up to ``also_viewed_max_users`` of the product's shoppers
        (lowest ids first) and scores every other product by how many of them
        touched it.
        """
        limit = limit or self.settings.default_limit
        index = InteractionIndex.build(self.ledger.snapshot())
        shoppers = sorted({event.user_id for event in index.events if event.product_id == product_id})
        shoppers = set(shoppers[: self.settings.also_viewed_max_users])

        touched: Dict[int, set] = {}
        for event in index.events:
            if event.user_id in shoppers and event.product_id != product_id:
                touched.setdefault(event.product_id, set()).add(event.user_id)

        scores = {pid: float(len(users)) for pid, users in touched.items()}
        ranked = self.rank(scores, index.popularity, limit)
        return self._result(
            None,
            RecommendationType.SIMILAR_ITEMS,
            RecommendationType.SIMILAR_ITEMS,
            ranked,
            personalized=False,
        )

    def explain(
        self,
        user_id: int,
        product_id: int,
        rec_type=RecommendationType.HYBRID,
    ) -> str:
        """Say why a product is recommended to a user.

        User-based lists count the similar users who interacted with the
        product; item-based lists name the most similar product from the
        user's history. HYBRID prefers the item-based reason.

        Raises:
            ValidationError: If ``rec_type`` is SIMILAR_ITEMS.
        """
        rec_type = RecommendationType.parse(rec_type)
        if rec_type == RecommendationType.SIMILAR_ITEMS:
            raise ValidationError(
                "SIMILAR_ITEMS is keyed by product; nothing to explain for a user",
                details={"user_id": user_id},
            )
        if rec_type == RecommendationType.TRENDING:
            days = self.settings.trending_window_days
            return f"Popular with shoppers over the last {days:g} days"

        index = InteractionIndex.build(self.ledger.snapshot())
        if rec_type in (RecommendationType.ITEM_BASED_CF, RecommendationType.HYBRID):
            source_id = self._most_similar_in_history(user_id, product_id, index)
            if source_id is not None:
                return f"Similar to product {source_id} you interacted with before"
            if rec_type == RecommendationType.ITEM_BASED_CF:
                return "Customers who bought similar items also bought this"

        neighbors = self.user_store.neighbors(
            user_id,
            self.settings.user_similarity_method,
            self.settings.top_k_neighbors,
            positive_only=True,
        )
        liked = sum(
            1 for neighbor_id, _ in neighbors if product_id in index.vectors.get(neighbor_id, {})
        )
        if liked == 1:
            return "1 similar user liked this product"
        if liked:
            return f"{liked} similar users liked this product"
        return "Recommended based on your preferences"

    def _most_similar_in_history(
        self, user_id: int, product_id: int, index: InteractionIndex
    ) -> Optional[int]:
        methods = [self.settings.product_similarity_method]
        if self.settings.content_fallback and methods[0] != SimilarityMethod.CONTENT:
            methods.append(SimilarityMethod.CONTENT)

        best_id, best_score = None, 0.0
        for source_id in sorted(index.vectors.get(user_id, {})):
            for method in methods:
                similarity = self.product_store.score(source_id, product_id, method)
                if similarity is not None:
                    break
            if similarity is not None and similarity > best_score:
                best_id, best_score = source_id, similarity
        return best_id

    @staticmethod
    def rank(
        scores: Dict[int, float],
        popularity: Dict[int, int],
        limit: int,
    ) -> List[Tuple[int, float]]:
        """Sort by score, then raw interaction count, then product id."""
        ranked = sorted(
            scores.items(),
            key=lambda item: (-item[1], -popularity.get(item[0], 0), item[0]),
        )
        return ranked[:limit]

    def _result(
        self,
        user_id: Optional[int],
        requested_type: RecommendationType,
        actual_type: RecommendationType,
        ranked: List[Tuple[int, float]],
        personalized: bool = True,
        note: Optional[str] = None,
    ) -> RecommendationResult:
        generated_at = self._clock()
        top = ranked[0][1] if ranked else 0.0
        recommendations = [
            Recommendation(
                user_id=user_id,
                product_id=int(product_id),
                recommendation_type=actual_type,
                confidence_score=float(score / top) if top > 0 else 0.0,
                generated_at=generated_at,
            )
            for product_id, score in ranked
        ]
        return RecommendationResult(
            user_id=user_id,
            requested_type=requested_type,
            recommendation_type=actual_type,
            recommendations=recommendations,
            personalized=personalized,
            note=note,
        )
