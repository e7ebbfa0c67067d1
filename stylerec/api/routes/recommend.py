"""Recommendation endpoints for the StyleRec API.

This module provides API endpoints for reading ranked recommendations for a
user or an anonymous homepage visitor, explanations for a recommended
product, and product-keyed lists (similar, also viewed, bought together).
"""

import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from stylerec.api.metrics import metrics_service
from stylerec.api.state import get_service
from stylerec.recommender.models import Recommendation, RecommendationType
from stylerec.recommender.service import RecommendationService

# Configure module logger
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(
    prefix="/recommend",
    tags=["recommendations"],
)

MAX_LIMIT = 100


class RecommendedProduct(BaseModel):
    """A recommended product id with its confidence score."""

    product_id: int
    score: float = Field(..., description="Confidence score, best item = 1.0")


class RecommendationResponse(BaseModel):
    """Response model for recommendation requests.

    Attributes:
        user_id: The user ID for which recommendations were generated, null
            for an anonymous homepage visitor.
        requested_type: Recommendation type the caller asked for.
        recommendation_type: Type that actually produced the list.
        personalized: False when the list fell back to trending products.
        note: Explanation when personalization was not possible.
        from_cache: Whether the list was served from the cache.
        recommendations: Ranked products, best first.
    """

    user_id: Optional[int]
    requested_type: RecommendationType
    recommendation_type: RecommendationType
    personalized: bool
    note: Optional[str] = None
    from_cache: bool = False
    recommendations: List[RecommendedProduct]


class ExplanationResponse(BaseModel):
    user_id: int
    product_id: int
    recommendation_type: RecommendationType
    explanation: str


class SimilarProductsResponse(BaseModel):
    product_id: int
    recommendations: List[RecommendedProduct]


def _to_items(recommendations: List[Recommendation]) -> List[RecommendedProduct]:
    return [
        RecommendedProduct(product_id=rec.product_id, score=round(rec.confidence_score, 6))
        for rec in recommendations
    ]


def _to_response(user_id: Optional[int], result) -> RecommendationResponse:
    return RecommendationResponse(
        user_id=user_id,
        requested_type=result.requested_type,
        recommendation_type=result.recommendation_type,
        personalized=result.personalized,
        note=result.note,
        from_cache=result.from_cache,
        recommendations=_to_items(result.recommendations),
    )


@router.get("/homepage", response_model=RecommendationResponse)
def get_homepage_recommendations(
    user_id: Optional[int] = Query(default=None, description="Signed-in user, omit for anonymous visitors"),
    limit: Optional[int] = Query(default=None, ge=1, le=MAX_LIMIT),
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    """Get the homepage list: HYBRID for a signed-in user, TRENDING otherwise.

    Example:
        GET /recommend/homepage?limit=10
        Returns the 10 trending products shown to anonymous visitors.
    """
    start_time = time.time()
    result = service.get_homepage_recommendations(user_id, limit)

    metrics_service.record_request(
        latency_ms=(time.time() - start_time) * 1000,
        from_cache=result.from_cache,
        degraded=result.recommendation_type != result.requested_type,
    )
    return _to_response(user_id, result)


@router.get("/{user_id}", response_model=RecommendationResponse)
def get_recommendations(
    user_id: int,
    type: str = Query(default=RecommendationType.HYBRID.value, description="Recommendation type"),
    limit: Optional[int] = Query(default=None, ge=1, le=MAX_LIMIT),
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    """Get product recommendations for a user.

    Serves the cached list when it is still fresh; otherwise generates it,
    caches it and returns it. Users without history receive trending
    products, flagged by ``recommendation_type`` and ``personalized``.

    Example:
        GET /recommend/42?type=item_based_cf&limit=5
        Returns top 5 item-based recommendations for user 42.
    """
    start_time = time.time()
    logger.info(
        "Recommendation request",
        extra={"user_id": user_id, "recommendation_type": type, "limit": limit},
    )

    result = service.get_recommendations(user_id, type, limit)

    metrics_service.record_request(
        latency_ms=(time.time() - start_time) * 1000,
        from_cache=result.from_cache,
        degraded=result.recommendation_type != result.requested_type,
    )

    return _to_response(user_id, result)


@router.get("/{user_id}/explain/{product_id}", response_model=ExplanationResponse)
def explain_recommendation(
    user_id: int,
    product_id: int,
    type: str = Query(default=RecommendationType.HYBRID.value, description="Recommendation type"),
    service: RecommendationService = Depends(get_service),
) -> ExplanationResponse:
    """Explain why a product is recommended to a user."""
    rec_type = service.parse_type(type)
    return ExplanationResponse(
        user_id=user_id,
        product_id=product_id,
        recommendation_type=rec_type,
        explanation=service.explain_recommendation(user_id, product_id, rec_type),
    )


@router.get("/products/{product_id}/similar", response_model=SimilarProductsResponse)
def get_similar_products(
    product_id: int,
    limit: Optional[int] = Query(default=None, ge=1, le=MAX_LIMIT),
    service: RecommendationService = Depends(get_service),
) -> SimilarProductsResponse:
    """Get the nearest neighbors of a product ("you may also like")."""
    recommendations = service.get_similar_products(product_id, limit)
    return SimilarProductsResponse(product_id=product_id, recommendations=_to_items(recommendations))


@router.get("/products/{product_id}/also-viewed", response_model=SimilarProductsResponse)
def get_also_viewed(
    product_id: int,
    limit: Optional[int] = Query(default=None, ge=1, le=MAX_LIMIT),
    service: RecommendationService = Depends(get_service),
) -> SimilarProductsResponse:
    """Get products that shoppers of this product also interacted with."""
    recommendations = service.get_also_viewed(product_id, limit)
    return SimilarProductsResponse(product_id=product_id, recommendations=_to_items(recommendations))


@router.get("/products/{product_id}/bought-together", response_model=SimilarProductsResponse)
def get_frequently_bought_together(
    product_id: int,
    limit: Optional[int] = Query(default=None, ge=1, le=MAX_LIMIT),
    service: RecommendationService = Depends(get_service),
) -> SimilarProductsResponse:
    """Get products frequently bought together with this one.

    Empty until the co-occurrence job has run.
    """
    recommendations = service.get_frequently_bought_together(product_id, limit)
    return SimilarProductsResponse(product_id=product_id, recommendations=_to_items(recommendations))
