"""Runtime configuration for the recommendation subsystem.

All tunables live on ``RecommenderSettings``. Defaults mirror the values the
storefront has run with; every field can be overridden through ``STYLEREC_*``
environment variables via ``RecommenderSettings.from_env``.
"""

import logging
import os
from datetime import timedelta
from typing import Dict, FrozenSet, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from stylerec.recommender.models import (
    PRODUCT_SIMILARITY_METHODS,
    USER_SIMILARITY_METHODS,
    InteractionType,
    RecommendationType,
    SimilarityMethod,
)

# Configure module logger
logger = logging.getLogger(__name__)

ENV_PREFIX = "STYLEREC_"

SECONDS_PER_HOUR = 3600
DEFAULT_CACHE_TTL_SECONDS: Dict[RecommendationType, Optional[int]] = {
    RecommendationType.USER_BASED_CF: 24 * SECONDS_PER_HOUR,
    RecommendationType.ITEM_BASED_CF: 24 * SECONDS_PER_HOUR,
    RecommendationType.HYBRID: 24 * SECONDS_PER_HOUR,
    RecommendationType.TRENDING: 1 * SECONDS_PER_HOUR,
    RecommendationType.SIMILAR_ITEMS: 24 * SECONDS_PER_HOUR,
}


class RecommenderSettings(BaseModel):
    """Tunables for similarity computation, ranking and caching."""

    top_k_neighbors: int = Field(default=20, ge=1, description="Neighbors (users or items) consulted per source")
    user_similarity_method: SimilarityMethod = SimilarityMethod.COSINE
    product_similarity_method: SimilarityMethod = SimilarityMethod.COSINE
    content_fallback: bool = Field(
        default=True,
        description="Use CONTENT edges for products without interaction-based edges",
    )
    min_shared_items: int = Field(default=1, ge=1, description="Minimum overlap before a pair is scored")
    min_similarity_score: float = Field(default=0.0, ge=0.0, le=1.0)
    hybrid_user_weight: float = Field(default=0.5, ge=0.0, le=1.0)
    trending_window_days: float = Field(default=7.0, gt=0)
    cache_ttl_seconds: Dict[RecommendationType, Optional[int]] = Field(
        default_factory=lambda: dict(DEFAULT_CACHE_TTL_SECONDS)
    )
    default_limit: int = Field(default=10, ge=1)
    max_cached_items: int = Field(default=50, ge=1)
    max_workers: int = Field(default=4, ge=1)
    similarity_chunk_size: int = Field(default=500, ge=1)
    invalidate_on: FrozenSet[InteractionType] = frozenset({InteractionType.PURCHASE})
    cooccurrence_normalizer: float = Field(
        default=10.0, gt=0, description="Co-buyer count that maps to a co-occurrence score of 1.0"
    )
    also_viewed_max_users: int = Field(default=50, ge=1)
    similarity_refresh_interval_seconds: Optional[int] = Field(default=None, gt=0)
    cooccurrence_refresh_interval_seconds: Optional[int] = Field(default=None, gt=0)
    cache_sweep_interval_seconds: Optional[int] = Field(default=None, gt=0)
    model_dir: str = "models"
    log_level: str = "INFO"

    @field_validator("user_similarity_method")
    @classmethod
    def _check_user_method(cls, value: SimilarityMethod) -> SimilarityMethod:
        if value not in USER_SIMILARITY_METHODS:
            raise ValueError(f"{value.value} is not a user similarity method")
        return value

    @field_validator("product_similarity_method")
    @classmethod
    def _check_product_method(cls, value: SimilarityMethod) -> SimilarityMethod:
        if value not in PRODUCT_SIMILARITY_METHODS:
            raise ValueError(f"{value.value} is not a product similarity method")
        return value

    @field_validator("cache_ttl_seconds")
    @classmethod
    def _check_ttls(
        cls, value: Dict[RecommendationType, Optional[int]]
    ) -> Dict[RecommendationType, Optional[int]]:
        merged = dict(DEFAULT_CACHE_TTL_SECONDS)
        merged.update(value)
        for rec_type, ttl in merged.items():
            if ttl is not None and ttl <= 0:
                raise ValueError(f"TTL for {rec_type.value} must be positive or None")
        return merged

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level

    @model_validator(mode="after")
    def _purchase_always_invalidates(self) -> "RecommenderSettings":
        if InteractionType.PURCHASE not in self.invalidate_on:
            self.invalidate_on = frozenset(self.invalidate_on | {InteractionType.PURCHASE})
        return self

    def ttl_for(self, rec_type: RecommendationType) -> Optional[timedelta]:
        """Cache TTL for a recommendation type; None means never expires."""
        seconds = self.cache_ttl_seconds.get(rec_type)
        return timedelta(seconds=seconds) if seconds is not None else None

    @property
    def trending_window(self) -> timedelta:
        return timedelta(days=self.trending_window_days)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RecommenderSettings":
        """Build settings from ``STYLEREC_*`` environment variables.

        Scalar fields map to ``STYLEREC_<FIELD_NAME>``. ``STYLEREC_INVALIDATE_ON``
        takes a comma separated list of interaction types and per-type cache
        TTLs are read from ``STYLEREC_CACHE_TTL_<TYPE>`` (``none`` disables
        expiry for that type).

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            Validated settings.
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, object] = {}

        for name in cls.model_fields:
            if name in {"cache_ttl_seconds", "invalidate_on"}:
                continue
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = None if raw.strip().lower() == "none" else raw

        raw_invalidate = environ.get(f"{ENV_PREFIX}INVALIDATE_ON")
        if raw_invalidate:
            values["invalidate_on"] = frozenset(
                InteractionType(part.strip().lower())
                for part in raw_invalidate.split(",")
                if part.strip()
            )

        ttls: Dict[RecommendationType, Optional[int]] = {}
        for rec_type in RecommendationType:
            raw_ttl = environ.get(f"{ENV_PREFIX}CACHE_TTL_{rec_type.name}")
            if raw_ttl is not None:
                ttls[rec_type] = None if raw_ttl.strip().lower() == "none" else int(raw_ttl)
        if ttls:
            values["cache_ttl_seconds"] = ttls

        settings = cls(**values)
        logger.debug("Loaded settings from environment", extra={"overrides": sorted(values)})
        return settings
