"""Ingestion endpoints for the StyleRec API.

The storefront posts every view, cart-add, purchase, wishlist and rating
action here, and keeps product attributes current for content similarity.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from stylerec.api.metrics import metrics_service
from stylerec.api.state import get_service
from stylerec.recommender.models import InteractionType, ProductAttributes
from stylerec.recommender.service import RecommendationService

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(tags=["interactions"])


class InteractionRequest(BaseModel):
    """An interaction reported by the storefront.

    Ids are optional at the schema level so that a missing id is reported
    by the ledger's own validation.
    """

    user_id: Optional[int] = None
    product_id: Optional[int] = None
    interaction_type: str = Field(default=InteractionType.VIEW.value)
    value: Optional[float] = Field(default=None, description="Rating value for rating events")
    session_id: Optional[str] = None


class InteractionResponse(BaseModel):
    interaction_id: int
    user_id: int
    product_id: int
    interaction_type: InteractionType


class ProductAttributesRequest(BaseModel):
    category: Optional[str] = None
    brand: Optional[str] = None
    color: Optional[str] = None
    material: Optional[str] = None
    gender: Optional[str] = None
    season: Optional[str] = None


class ProductAttributesResponse(BaseModel):
    product_id: int
    tokens: List[str]


@router.post(
    "/interactions",
    response_model=InteractionResponse,
    status_code=status.HTTP_201_CREATED,
)
def record_interaction(
    request: InteractionRequest,
    service: RecommendationService = Depends(get_service),
) -> InteractionResponse:
    """Record a user-product interaction."""
    interaction_id = service.record_interaction(
        user_id=request.user_id,
        product_id=request.product_id,
        interaction_type=request.interaction_type,
        value=request.value,
        session_id=request.session_id,
    )
    metrics_service.record_interaction()

    return InteractionResponse(
        interaction_id=interaction_id,
        user_id=request.user_id,
        product_id=request.product_id,
        interaction_type=InteractionType.parse(request.interaction_type),
    )


@router.put("/products/{product_id}/attributes", response_model=ProductAttributesResponse)
def put_product_attributes(
    product_id: int,
    request: ProductAttributesRequest,
    service: RecommendationService = Depends(get_service),
) -> ProductAttributesResponse:
    """Register or replace the catalog attributes of a product."""
    attributes = ProductAttributes(product_id=product_id, **request.model_dump())
    service.register_products([attributes])
    logger.info("Product attributes updated", extra={"product_id": product_id})
    return ProductAttributesResponse(product_id=product_id, tokens=sorted(attributes.tokens()))
