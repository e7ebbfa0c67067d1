"""Similarity computation over sparse interaction data.

Provides the pairwise similarity functions (cosine, Pearson, Jaccard and
attribute-based content similarity) and the batch engine that scores every
overlapping pair of users or products and writes the resulting edges.

An interaction-based similarity is *undefined* (``None``) when two vectors
share no dimension. Undefined pairs never produce an edge: a stored zero
means measured dissimilarity, a missing edge means there was no signal.
Content similarity is defined for any two attributed products.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.sparse import csr_matrix, triu
from sklearn.preprocessing import MultiLabelBinarizer

from stylerec.config import RecommenderSettings
from stylerec.recommender.ledger import (
    PreferenceVectors,
    preference_vectors,
    transpose_vectors,
    utc_now,
)
from stylerec.recommender.models import (
    CO_PURCHASE_TYPES,
    PRODUCT_SIMILARITY_METHODS,
    SCORE_BOUNDS,
    USER_SIMILARITY_METHODS,
    InteractionEvent,
    ProductAttributes,
    SimilarityEdge,
    SimilarityMethod,
)
from stylerec.recommender.store import SimilarityStore
from stylerec.recommender.utils import build_interaction_matrix

# Configure module logger
logger = logging.getLogger(__name__)

# Variance below this is treated as zero when correlating.
VARIANCE_EPSILON = 1e-12

Vector = Mapping[int, float]
PairScorer = Callable[[int, int], Optional[float]]


def _shared_values(first: Vector, second: Vector) -> Tuple[np.ndarray, np.ndarray]:
    keys = sorted(first.keys() & second.keys())
    a = np.array([first[key] for key in keys], dtype=np.float64)
    b = np.array([second[key] for key in keys], dtype=np.float64)
    return a, b


def cosine_similarity(first: Vector, second: Vector) -> Optional[float]:
    """Cosine similarity of two sparse vectors.

    The dot product runs over the shared dimensions only while the norms
    cover each full vector, so products one user never touched still count
    against the similarity.

    Returns:
        Score in [0, 1], or None if the vectors share no dimension.

    Raises:
        ZeroDivisionError: If either vector has zero norm.
    """
    if not first or not second or not first.keys() & second.keys():
        return None

    a, b = _shared_values(first, second)
    norm_first = float(np.linalg.norm(np.fromiter(first.values(), dtype=np.float64)))
    norm_second = float(np.linalg.norm(np.fromiter(second.values(), dtype=np.float64)))
    if norm_first == 0.0 or norm_second == 0.0:
        raise ZeroDivisionError("cosine similarity of a zero-norm vector")

    return float(np.dot(a, b)) / (norm_first * norm_second)


def pearson_correlation(first: Vector, second: Vector) -> Optional[float]:
    """Pearson correlation over the shared dimensions.

    Each side is centred on its own mean over the shared set.

    Returns:
        Score in [-1, 1] (0.0 if either side has zero variance), or None if
        the vectors share no dimension.
    """
    if not first or not second or not first.keys() & second.keys():
        return None

    a, b = _shared_values(first, second)
    centred_a = a - a.mean()
    centred_b = b - b.mean()
    variance_a = float(np.dot(centred_a, centred_a))
    variance_b = float(np.dot(centred_b, centred_b))
    if variance_a < VARIANCE_EPSILON or variance_b < VARIANCE_EPSILON:
        return 0.0

    covariance = float(np.dot(centred_a, centred_b))
    return covariance / (float(np.sqrt(variance_a)) * float(np.sqrt(variance_b)))


def jaccard_similarity(first: Iterable, second: Iterable) -> Optional[float]:
    """|intersection| / |union| of two sets, ignoring any weights.

    Returns:
        Score in [0, 1], or None if the sets share nothing.
    """
    first_set, second_set = set(first), set(second)
    shared = first_set & second_set
    if not shared:
        return None
    return len(shared) / len(first_set | second_set)


def content_similarity(first: ProductAttributes, second: ProductAttributes) -> Optional[float]:
    """Jaccard similarity of two products' attribute token sets.

    Needs no interaction data, so it is defined for brand-new products. Two
    attributed products sharing no token score 0.0.

    Returns:
        Score in [0, 1], or None if either product has no attributes.
    """
    first_tokens, second_tokens = first.tokens(), second.tokens()
    if not first_tokens or not second_tokens:
        return None
    return len(first_tokens & second_tokens) / len(first_tokens | second_tokens)


def vector_similarity(first: Vector, second: Vector, method: SimilarityMethod) -> Optional[float]:
    """Dispatch to the interaction-based similarity function for ``method``."""
    if method == SimilarityMethod.COSINE:
        return cosine_similarity(first, second)
    if method == SimilarityMethod.PEARSON:
        return pearson_correlation(first, second)
    if method == SimilarityMethod.JACCARD:
        return jaccard_similarity(first.keys(), second.keys())
    raise ValueError(f"{method.value} is not an interaction-based similarity method")


def _clamp(score: float, method: SimilarityMethod) -> float:
    low, high = SCORE_BOUNDS[method]
    return min(max(score, low), high)


@dataclass
class SimilarityRunReport:
    """Outcome of one batch similarity run."""

    kind: str
    method: SimilarityMethod
    entities: int = 0
    pairs_considered: int = 0
    edges_written: int = 0
    pairs_skipped: int = 0
    pairs_below_threshold: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["method"] = self.method.value
        return data


def candidate_pairs(presence: csr_matrix, min_shared: int = 1) -> List[Tuple[int, int]]:
    """Row index pairs (i < j) that share at least ``min_shared`` columns.

    Args:
        presence: Binary row x column matrix.
        min_shared: Minimum number of shared columns.

    Returns:
        Sorted list of row index pairs.
    """
    if presence.shape[0] < 2:
        return []
    co_occurrence = triu(presence @ presence.T, k=1).tocoo()
    mask = co_occurrence.data >= min_shared
    pairs = zip(co_occurrence.row[mask].tolist(), co_occurrence.col[mask].tolist())
    return sorted(pairs)


class SimilarityEngine:
    """Computes and stores user and product similarity edges.

    Runs are embarrassingly parallel across pairs: candidate pairs are split
    into chunks and scored on a bounded thread pool. A pair whose computation
    fails is skipped and counted; it never aborts the run.
    """

    def __init__(
        self,
        user_store: SimilarityStore,
        product_store: SimilarityStore,
        settings: Optional[RecommenderSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.user_store = user_store
        self.product_store = product_store
        self.settings = settings or RecommenderSettings()
        self._clock = clock

    def compute_user_similarities(
        self,
        events: Iterable[InteractionEvent],
        method: Optional[SimilarityMethod] = None,
    ) -> SimilarityRunReport:
        """Score every pair of users that interacted with a common product."""
        method = method or self.settings.user_similarity_method
        if method not in USER_SIMILARITY_METHODS:
            raise ValueError(f"{method.value} is not a user similarity method")
        vectors = preference_vectors(events)
        return self.compute_from_vectors("user", vectors, method, self.user_store)

    def compute_product_similarities(
        self,
        events: Iterable[InteractionEvent],
        method: Optional[SimilarityMethod] = None,
    ) -> SimilarityRunReport:
        """Score every pair of products that share an interacting user."""
        method = method or self.settings.product_similarity_method
        if method == SimilarityMethod.CONTENT:
            raise ValueError("CONTENT similarity is computed from attributes; use compute_content_similarities")
        if method not in PRODUCT_SIMILARITY_METHODS:
            raise ValueError(f"{method.value} is not a product similarity method")
        vectors = transpose_vectors(preference_vectors(events))
        return self.compute_from_vectors("product", vectors, method, self.product_store)

    def compute_from_vectors(
        self,
        kind: str,
        vectors: PreferenceVectors,
        method: SimilarityMethod,
        store: SimilarityStore,
    ) -> SimilarityRunReport:
        """Score all overlapping pairs of the given vectors and store the edges."""
        if not vectors:
            logger.warning(f"No {kind} vectors to compare", extra={"method": method.value})
            return SimilarityRunReport(kind=kind, method=method)

        presence, row_index, _ = build_interaction_matrix(vectors, binary=True)
        ids = sorted(row_index, key=row_index.get)
        pairs = [
            (ids[i], ids[j])
            for i, j in candidate_pairs(presence, self.settings.min_shared_items)
        ]

        def scorer(first_id: int, second_id: int) -> Optional[float]:
            return vector_similarity(vectors[first_id], vectors[second_id], method)

        return self._score_pairs(kind, method, len(ids), pairs, scorer, store)

    def compute_content_similarities(
        self,
        catalog: Mapping[int, ProductAttributes],
    ) -> SimilarityRunReport:
        """Score product pairs by attribute overlap and store CONTENT edges."""
        method = SimilarityMethod.CONTENT
        tokens = {product_id: attributes.tokens() for product_id, attributes in catalog.items()}
        tokens = {product_id: toks for product_id, toks in tokens.items() if toks}
        if len(tokens) < 2:
            logger.warning("Not enough products with attributes for content similarity")
            return SimilarityRunReport(kind="product", method=method, entities=len(tokens))

        ids = sorted(tokens)
        binarizer = MultiLabelBinarizer(sparse_output=True)
        presence = csr_matrix(binarizer.fit_transform([sorted(tokens[pid]) for pid in ids]))
        pairs = [(ids[i], ids[j]) for i, j in candidate_pairs(presence, 1)]

        def scorer(first_id: int, second_id: int) -> Optional[float]:
            return content_similarity(catalog[first_id], catalog[second_id])

        return self._score_pairs("product", method, len(ids), pairs, scorer, self.product_store)

    def compute_cooccurrence_similarities(
        self,
        events: Iterable[InteractionEvent],
    ) -> SimilarityRunReport:
        """Score product pairs by how many users bought or carted both.

        The score is ``min(1, co_buyers / cooccurrence_normalizer)``, stored
        as CO_OCCURRENCE edges.
        """
        method = SimilarityMethod.CO_OCCURRENCE
        buyers: PreferenceVectors = {}
        for event in events:
            if event.interaction_type in CO_PURCHASE_TYPES:
                buyers.setdefault(event.product_id, {})[event.user_id] = 1.0
        if len(buyers) < 2:
            logger.warning("Not enough co-purchased products for co-occurrence similarity")
            return SimilarityRunReport(kind="product", method=method, entities=len(buyers))

        presence, row_index, _ = build_interaction_matrix(buyers, binary=True)
        ids = sorted(row_index, key=row_index.get)
        co_buyers = triu(presence @ presence.T, k=1).tocoo()
        counts = {
            (ids[i], ids[j]): int(count)
            for i, j, count in zip(
                co_buyers.row.tolist(), co_buyers.col.tolist(), co_buyers.data.tolist()
            )
            if count > 0
        }
        normalizer = self.settings.cooccurrence_normalizer

        def scorer(first_id: int, second_id: int) -> Optional[float]:
            return min(1.0, counts[(first_id, second_id)] / normalizer)

        return self._score_pairs(
            "product", method, len(ids), sorted(counts), scorer, self.product_store
        )

    def _score_pairs(
        self,
        kind: str,
        method: SimilarityMethod,
        entities: int,
        pairs: Sequence[Tuple[int, int]],
        scorer: PairScorer,
        store: SimilarityStore,
    ) -> SimilarityRunReport:
        start_time = time.time()
        computed_at = self._clock()
        threshold = self.settings.min_similarity_score
        chunk_size = self.settings.similarity_chunk_size

        def score_chunk(chunk: Sequence[Tuple[int, int]]) -> Tuple[List[SimilarityEdge], int, int]:
            edges: List[SimilarityEdge] = []
            skipped = 0
            below = 0
            for first_id, second_id in chunk:
                try:
                    score = scorer(first_id, second_id)
                except (ArithmeticError, ValueError, TypeError, KeyError) as e:
                    skipped += 1
                    logger.debug(
                        "Skipped similarity pair",
                        extra={
                            "kind": kind,
                            "pair": [first_id, second_id],
                            "error": str(e),
                            "error_type": type(e).__name__,
                        },
                    )
                    continue
                if score is None or np.isnan(score):
                    skipped += 1
                    continue
                if threshold > 0 and abs(score) < threshold:
                    below += 1
                    continue
                edges.append(
                    store.edge_type.create(first_id, second_id, _clamp(score, method), method, computed_at)
                )
            return edges, skipped, below

        chunks = [pairs[i:i + chunk_size] for i in range(0, len(pairs), chunk_size)]
        report = SimilarityRunReport(
            kind=kind, method=method, entities=entities, pairs_considered=len(pairs)
        )

        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            for edges, skipped, below in executor.map(score_chunk, chunks):
                report.edges_written += store.upsert_many(edges)
                report.pairs_skipped += skipped
                report.pairs_below_threshold += below

        report.duration_ms = round((time.time() - start_time) * 1000, 2)
        logger.info(f"Computed {kind} similarities", extra=report.to_dict())
        return report
