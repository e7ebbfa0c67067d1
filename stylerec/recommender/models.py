"""Core records of the recommendation subsystem.

Enumerations that carry data (interaction weights, legal similarity methods)
keep that data in module-level tables keyed by the enum member. Records only
hold ids and scores; hydrating them into full product objects is left to the
catalog layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

RATING_MIN = 1.0
RATING_MAX = 5.0


class InteractionType(str, Enum):
    """Kinds of user-product interaction recorded by the storefront."""

    VIEW = "view"
    WISHLIST = "wishlist"
    ADD_TO_CART = "add_to_cart"
    RATING = "rating"
    PURCHASE = "purchase"

    @classmethod
    def parse(cls, value) -> "InteractionType":
        """Parse a type name, falling back to VIEW for anything unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized or member.name.lower() == normalized:
                    return member
        return cls.VIEW


INTERACTION_WEIGHTS: Dict[InteractionType, float] = {
    InteractionType.VIEW: 1.0,
    InteractionType.WISHLIST: 2.0,
    InteractionType.ADD_TO_CART: 3.0,
    InteractionType.RATING: 5.0,
    InteractionType.PURCHASE: 10.0,
}


def base_weight(interaction_type: InteractionType) -> float:
    return INTERACTION_WEIGHTS.get(interaction_type, INTERACTION_WEIGHTS[InteractionType.VIEW])


class SimilarityMethod(str, Enum):
    COSINE = "cosine"
    PEARSON = "pearson"
    JACCARD = "jaccard"
    CONTENT = "content"
    CO_OCCURRENCE = "co_occurrence"


USER_SIMILARITY_METHODS: FrozenSet[SimilarityMethod] = frozenset(
    {SimilarityMethod.COSINE, SimilarityMethod.PEARSON, SimilarityMethod.JACCARD}
)
PRODUCT_SIMILARITY_METHODS: FrozenSet[SimilarityMethod] = frozenset(
    {SimilarityMethod.COSINE, SimilarityMethod.JACCARD, SimilarityMethod.CONTENT}
)
# CO_OCCURRENCE edges only back "frequently bought together" lookups.
CO_PURCHASE_TYPES: FrozenSet[InteractionType] = frozenset(
    {InteractionType.PURCHASE, InteractionType.ADD_TO_CART}
)

# Score domain per method, as (low, high).
SCORE_BOUNDS: Dict[SimilarityMethod, Tuple[float, float]] = {
    SimilarityMethod.COSINE: (0.0, 1.0),
    SimilarityMethod.PEARSON: (-1.0, 1.0),
    SimilarityMethod.JACCARD: (0.0, 1.0),
    SimilarityMethod.CONTENT: (0.0, 1.0),
    SimilarityMethod.CO_OCCURRENCE: (0.0, 1.0),
}


class RecommendationType(str, Enum):
    USER_BASED_CF = "user_based_cf"
    ITEM_BASED_CF = "item_based_cf"
    HYBRID = "hybrid"
    TRENDING = "trending"
    SIMILAR_ITEMS = "similar_items"

    @classmethod
    def parse(cls, value) -> "RecommendationType":
        """Parse a type name. Raises ValueError if it is not a known type."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized or member.name.lower() == normalized:
                return member
        raise ValueError(f"Unknown recommendation type '{value}'")


# Types whose candidates must exclude products the user already interacted with.
PERSONALIZED_TYPES: FrozenSet[RecommendationType] = frozenset(
    {
        RecommendationType.USER_BASED_CF,
        RecommendationType.ITEM_BASED_CF,
        RecommendationType.HYBRID,
    }
)


@dataclass(frozen=True)
class InteractionEvent:
    """A single immutable interaction between a user and a product."""

    user_id: Optional[int]
    product_id: Optional[int]
    interaction_type: InteractionType
    timestamp: datetime
    value: Optional[float] = None
    session_id: Optional[str] = None
    event_id: Optional[int] = None

    @property
    def weighted_score(self) -> float:
        return weighted_score(self)


def weighted_score(event: InteractionEvent) -> float:
    """Return the score an event contributes to a preference vector.

    A RATING event scores its own value; every other type scores the fixed
    base weight of its type.
    """
    if event.interaction_type == InteractionType.RATING and event.value is not None:
        return float(event.value)
    return base_weight(event.interaction_type)


@dataclass(frozen=True)
class SimilarityEdge:
    """Similarity between two entities, stored once per unordered pair."""

    left_id: int
    right_id: int
    score: float
    method: SimilarityMethod
    computed_at: datetime

    @property
    def pair(self) -> Tuple[int, int]:
        return (self.left_id, self.right_id)

    def other(self, entity_id: int) -> int:
        """Return the id on the opposite side of the edge from ``entity_id``."""
        return self.right_id if entity_id == self.left_id else self.left_id

    @classmethod
    def create(
        cls,
        first_id: int,
        second_id: int,
        score: float,
        method: SimilarityMethod,
        computed_at: datetime,
    ) -> "SimilarityEdge":
        """Build an edge with its pair canonicalized (smaller id first)."""
        left, right = canonical_pair(first_id, second_id)
        return cls(left, right, float(score), method, computed_at)


@dataclass(frozen=True)
class UserSimilarityEdge(SimilarityEdge):
    @property
    def user_id_1(self) -> int:
        return self.left_id

    @property
    def user_id_2(self) -> int:
        return self.right_id


@dataclass(frozen=True)
class ProductSimilarityEdge(SimilarityEdge):
    @property
    def product_id_1(self) -> int:
        return self.left_id

    @property
    def product_id_2(self) -> int:
        return self.right_id


def canonical_pair(first_id: int, second_id: int) -> Tuple[int, int]:
    return (first_id, second_id) if first_id <= second_id else (second_id, first_id)


@dataclass(frozen=True)
class ProductAttributes:
    """Catalog attributes used for content similarity."""

    product_id: int
    category: Optional[str] = None
    brand: Optional[str] = None
    color: Optional[str] = None
    material: Optional[str] = None
    gender: Optional[str] = None
    season: Optional[str] = None

    ATTRIBUTE_FIELDS = ("category", "brand", "color", "material", "gender", "season")

    def tokens(self) -> FrozenSet[str]:
        """Return the attribute set as ``field:value`` tokens."""
        tokens = set()
        for name in self.ATTRIBUTE_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            text = str(value).strip().lower()
            if text:
                tokens.add(f"{name}:{text}")
        return frozenset(tokens)


@dataclass(frozen=True)
class Recommendation:
    """One ranked product recommendation for a user."""

    user_id: Optional[int]
    product_id: int
    recommendation_type: RecommendationType
    confidence_score: float
    generated_at: datetime
    expires_at: Optional[datetime] = None


@dataclass
class RecommendationResult:
    """Envelope returned by the generator and the service.

    ``recommendation_type`` is the type that actually produced the list; it
    differs from ``requested_type`` when personalization was not possible and
    the result was degraded to TRENDING.
    """

    user_id: Optional[int]
    requested_type: RecommendationType
    recommendation_type: RecommendationType
    recommendations: list = field(default_factory=list)
    personalized: bool = True
    note: Optional[str] = None
    from_cache: bool = False

    @property
    def product_ids(self) -> list:
        return [rec.product_id for rec in self.recommendations]
