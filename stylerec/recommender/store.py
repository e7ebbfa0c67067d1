"""In-memory similarity edge store.

Edges are kept once per canonical pair and method, with an adjacency index
so the generator can pull the top-K neighbors of any entity without scanning
every edge. A new edge for an existing pair and method overwrites the old one.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple, Type

from stylerec.recommender.models import (
    ProductSimilarityEdge,
    SimilarityEdge,
    SimilarityMethod,
    UserSimilarityEdge,
    canonical_pair,
)

# Configure module logger
logger = logging.getLogger(__name__)


class SimilarityStore:
    """Holds similarity edges of one kind (user pairs or product pairs)."""

    def __init__(self, edge_type: Type[SimilarityEdge] = SimilarityEdge, name: str = "similarity"):
        self.edge_type = edge_type
        self.name = name
        self._edges: Dict[SimilarityMethod, Dict[Tuple[int, int], SimilarityEdge]] = {}
        self._adjacency: Dict[SimilarityMethod, Dict[int, Dict[int, float]]] = {}
        self._lock = threading.RLock()

    def upsert(self, edge: SimilarityEdge) -> None:
        self.upsert_many([edge])

    def upsert_many(self, edges: Iterable[SimilarityEdge]) -> int:
        """Insert or overwrite edges. Returns the number of edges written."""
        written = 0
        with self._lock:
            for edge in edges:
                by_pair = self._edges.setdefault(edge.method, {})
                adjacency = self._adjacency.setdefault(edge.method, {})
                by_pair[edge.pair] = edge
                adjacency.setdefault(edge.left_id, {})[edge.right_id] = edge.score
                adjacency.setdefault(edge.right_id, {})[edge.left_id] = edge.score
                written += 1
        return written

    def get(self, first_id: int, second_id: int, method: SimilarityMethod) -> Optional[SimilarityEdge]:
        with self._lock:
            return self._edges.get(method, {}).get(canonical_pair(first_id, second_id))

    def score(self, first_id: int, second_id: int, method: SimilarityMethod) -> Optional[float]:
        edge = self.get(first_id, second_id, method)
        return edge.score if edge is not None else None

    def neighbors(
        self,
        entity_id: int,
        method: SimilarityMethod,
        k: Optional[int] = None,
        positive_only: bool = False,
    ) -> List[Tuple[int, float]]:
        """Return up to ``k`` neighbors of an entity, highest score first.

        Ties are broken by neighbor id so the order is deterministic.
        """
        with self._lock:
            row = dict(self._adjacency.get(method, {}).get(entity_id, {}))

        ranked = sorted(row.items(), key=lambda item: (-item[1], item[0]))
        if positive_only:
            ranked = [(other, score) for other, score in ranked if score > 0]
        return ranked if k is None else ranked[:k]

    def has_edges(self, entity_id: int, method: SimilarityMethod) -> bool:
        with self._lock:
            return bool(self._adjacency.get(method, {}).get(entity_id))

    def edges(self, method: Optional[SimilarityMethod] = None) -> List[SimilarityEdge]:
        with self._lock:
            if method is not None:
                return list(self._edges.get(method, {}).values())
            return [edge for by_pair in self._edges.values() for edge in by_pair.values()]

    def count(self, method: Optional[SimilarityMethod] = None) -> int:
        with self._lock:
            if method is not None:
                return len(self._edges.get(method, {}))
            return sum(len(by_pair) for by_pair in self._edges.values())

    def clear(self, method: Optional[SimilarityMethod] = None) -> None:
        with self._lock:
            if method is None:
                self._edges.clear()
                self._adjacency.clear()
            else:
                self._edges.pop(method, None)
                self._adjacency.pop(method, None)
        logger.info(f"Cleared {self.name} edges", extra={"method": method.value if method else "all"})


def user_similarity_store() -> SimilarityStore:
    return SimilarityStore(UserSimilarityEdge, name="user_similarity")


def product_similarity_store() -> SimilarityStore:
    return SimilarityStore(ProductSimilarityEdge, name="product_similarity")
