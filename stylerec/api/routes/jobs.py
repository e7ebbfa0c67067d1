"""On-demand batch job endpoints for the StyleRec API.

Jobs are queued as background tasks so the request returns immediately and
serving is never blocked by a similarity run.
"""

import logging
from typing import Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from stylerec.api.state import get_service
from stylerec.recommender.models import RecommendationType
from stylerec.recommender.service import RecommendationService

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/similarities", status_code=status.HTTP_202_ACCEPTED)
def refresh_similarities(
    background_tasks: BackgroundTasks,
    save: bool = Query(default=False, description="Persist edges to the model directory afterwards"),
    service: RecommendationService = Depends(get_service),
) -> Dict[str, str]:
    """Queue a recomputation of user, product and content similarities."""

    def run() -> None:
        service.refresh_similarities()
        if save:
            service.save_artifacts()

    background_tasks.add_task(run)
    logger.info("Similarity refresh scheduled", extra={"save": save})
    return {"status": "scheduled", "job": "similarities"}


@router.post("/recommendations", status_code=status.HTTP_202_ACCEPTED)
def precompute_recommendations(
    background_tasks: BackgroundTasks,
    type: str = Query(default=RecommendationType.HYBRID.value),
    service: RecommendationService = Depends(get_service),
) -> Dict[str, str]:
    """Queue generation and caching of recommendations for every known user."""
    rec_type = service.parse_type(type)
    background_tasks.add_task(service.precompute_recommendations, None, rec_type)
    return {"status": "scheduled", "job": "recommendations", "recommendation_type": rec_type.value}


@router.post("/reload-artifacts")
def reload_artifacts(service: RecommendationService = Depends(get_service)) -> Dict[str, str]:
    """Reload similarity edges from the model directory.

    Useful when a separate batch process has written new artifacts.
    """
    logger.info("Reloading similarity artifacts...")
    service.load_artifacts()
    return {"status": "Artifacts reloaded successfully"}


@router.post("/co-occurrence", status_code=status.HTTP_202_ACCEPTED)
def refresh_cooccurrence(
    background_tasks: BackgroundTasks,
    service: RecommendationService = Depends(get_service),
) -> Dict[str, str]:
    """Queue a recomputation of "frequently bought together" edges."""
    background_tasks.add_task(service.refresh_cooccurrence)
    logger.info("Co-occurrence refresh scheduled")
    return {"status": "scheduled", "job": "co_occurrence"}
