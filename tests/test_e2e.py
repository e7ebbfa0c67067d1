"""End-to-end tests for StyleRec.

Runs the full batch-and-serve cycle on generated storefront data: CSV
loading, similarity computation, artifact persistence, and recommendation
serving through the API.
"""

import logging
import random
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from scripts.generate_fake_data import generate_fake_catalog, generate_fake_interactions
from stylerec.api import state
from stylerec.api.main import app
from stylerec.config import RecommenderSettings
from stylerec.recommender.models import PERSONALIZED_TYPES, RecommendationType
from stylerec.recommender.service import RecommendationService
from stylerec.recommender.utils import (
    check_artifacts_exist,
    load_interactions_csv,
    load_product_catalog_csv,
)

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)


@pytest.fixture(scope="module")
def storefront_files(tmp_path_factory):
    """Generate interaction and catalog CSVs once for the module."""
    random.seed(42)
    data_dir = tmp_path_factory.mktemp("e2e_data")

    interactions_path = data_dir / "interactions.csv"
    catalog_path = data_dir / "catalog.csv"
    generate_fake_interactions(num_users=20, num_products=40, num_interactions=400).to_csv(
        interactions_path, index=False
    )
    generate_fake_catalog(num_products=40).to_csv(catalog_path, index=False)

    return interactions_path, catalog_path


@pytest.fixture
def batch_service(storefront_files, tmp_path) -> Generator[RecommendationService, None, None]:
    """Replay the generated data into a service and run the similarity job."""
    interactions_path, catalog_path = storefront_files
    service = RecommendationService(RecommenderSettings(model_dir=str(tmp_path)))
    for event in load_interactions_csv(str(interactions_path)):
        service.ledger.record(event)
    service.register_products(load_product_catalog_csv(str(catalog_path)).values())
    service.refresh_similarities()
    yield service


def test_personalized_lists_never_repeat_history(batch_service):
    """Test every user and personalized type against the user's own history."""
    for user_id in sorted(batch_service.ledger.user_ids()):
        seen = batch_service.ledger.product_ids_for(user_id)
        for rec_type in PERSONALIZED_TYPES:
            result = batch_service.get_recommendations(user_id, rec_type, limit=10)
            assert len(result.recommendations) <= 10
            assert not seen & set(result.product_ids)
            scores = [rec.confidence_score for rec in result.recommendations]
            assert scores == sorted(scores, reverse=True)


def test_similar_products_are_symmetric(batch_service):
    """Test that if B is a neighbor of A with score s, A is a neighbor of B with s."""
    method = batch_service.settings.product_similarity_method
    for edge in batch_service.product_store.edges(method)[:50]:
        forward = dict(batch_service.product_store.neighbors(edge.left_id, method))
        backward = dict(batch_service.product_store.neighbors(edge.right_id, method))
        assert forward[edge.right_id] == backward[edge.left_id] == edge.score


def test_artifacts_served_by_api(batch_service, tmp_path):
    """Test that artifacts written by the batch job are served by a fresh API process."""
    batch_service.save_artifacts()
    assert check_artifacts_exist(str(tmp_path))

    serving = RecommendationService(RecommenderSettings(model_dir=str(tmp_path)))
    for event in batch_service.ledger.snapshot():
        serving.ledger.record(event)
    state.set_service(serving)
    try:
        client = TestClient(app)
        assert client.post("/jobs/reload-artifacts").status_code == 200

        user_id = min(batch_service.ledger.user_ids())
        response = client.get(f"/recommend/{user_id}?type=item_based_cf&limit=5")

        assert response.status_code == 200
        data = response.json()
        assert data["requested_type"] == RecommendationType.ITEM_BASED_CF.value
        assert len(data["recommendations"]) <= 5
        seen = serving.ledger.product_ids_for(user_id)
        assert not seen & {item["product_id"] for item in data["recommendations"]}
    finally:
        state.set_service(None)
