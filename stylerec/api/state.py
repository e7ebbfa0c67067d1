"""Process-wide recommendation service used by the API routes.

The service is created lazily on first use from environment settings and, if
similarity artifacts exist in the configured model directory, preloaded with
them.
"""

import logging
from typing import Optional

from stylerec.config import RecommenderSettings
from stylerec.exceptions import ArtifactsNotFoundError
from stylerec.recommender.service import RecommendationService

# Configure module logger
logger = logging.getLogger(__name__)

_service: Optional[RecommendationService] = None


def get_service() -> RecommendationService:
    """Return the shared service, creating it on first use."""
    global _service

    if _service is not None:
        return _service

    settings = RecommenderSettings.from_env()
    service = RecommendationService(settings=settings)
    try:
        service.load_artifacts()
        logger.info(f"Loaded similarity artifacts from {settings.model_dir}")
    except ArtifactsNotFoundError:
        logger.info(
            f"No similarity artifacts in {settings.model_dir}; starting with empty stores"
        )

    _service = service
    return _service


def set_service(service: Optional[RecommendationService]) -> None:
    """Replace the shared service (``None`` forces a rebuild on next use)."""
    global _service
    _service = service
