"""CLI script for getting product recommendations.

Useful for testing and evaluation. Replays an interaction CSV into a fresh
service, loads stored similarity edges (or computes them when none are
saved), and prints recommendations for a user to the console.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from stylerec.config import RecommenderSettings
from stylerec.exceptions import ArtifactsNotFoundError, StyleRecException
from stylerec.recommender.models import RecommendationResult, RecommendationType
from stylerec.recommender.service import RecommendationService
from stylerec.recommender.utils import load_interactions_csv, load_product_catalog_csv

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


def build_service(
    interactions_csv: str,
    model_dir: str = "models",
    catalog_csv: Optional[str] = None,
) -> RecommendationService:
    """Create a service holding the CSV history and similarity edges.

    Args:
        interactions_csv: Interaction history to replay
        model_dir: Directory with similarity artifacts
        catalog_csv: Optional product catalog for content similarity

    Returns:
        Ready-to-query service
    """
    service = RecommendationService(settings=RecommenderSettings(model_dir=model_dir))
    for event in load_interactions_csv(interactions_csv):
        service.ledger.record(event)
    if catalog_csv:
        service.register_products(load_product_catalog_csv(catalog_csv).values())

    try:
        service.load_artifacts()
    except ArtifactsNotFoundError:
        logger.warning(f"No similarity artifacts in {model_dir}, computing them now")
        service.refresh_similarities()
    return service


def print_result(result: RecommendationResult, explain: bool = False) -> None:
    print(
        f"\nRecommendations for user {result.user_id} "
        f"(requested: {result.requested_type.value}, "
        f"served: {result.recommendation_type.value}):"
    )
    if result.note:
        print(f"  Note: {result.note}")
    print(f"  Top {len(result.recommendations)} products: {result.product_ids}")

    if explain:
        print(f"\nScore breakdown:")
        for rank, rec in enumerate(result.recommendations, start=1):
            print(f"  {rank:>3}. product {rec.product_id:<8} confidence {rec.confidence_score:.4f}")


def main() -> None:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Get product recommendations for a user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/predict_cli.py 42 data/fake_interactions.csv
  python scripts/predict_cli.py 42 data/fake_interactions.csv --limit 5
  python scripts/predict_cli.py 42 data/fake_interactions.csv --type item_based_cf
  python scripts/predict_cli.py 42 data/fake_interactions.csv --type trending --explain
        """
    )

    parser.add_argument(
        "user_id",
        type=int,
        help="User ID to get recommendations for"
    )

    parser.add_argument(
        "interactions_csv",
        type=str,
        help="Interaction history CSV to replay"
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of recommendations to return (default: 10)"
    )

    parser.add_argument(
        "--type",
        type=str,
        choices=[
            rec_type.value
            for rec_type in RecommendationType
            if rec_type != RecommendationType.SIMILAR_ITEMS
        ],
        default=RecommendationType.HYBRID.value,
        help="Recommendation type (default: hybrid)"
    )

    parser.add_argument(
        "--catalog",
        type=str,
        default=None,
        help="Product catalog CSV enabling content similarity"
    )

    parser.add_argument(
        "--model-dir",
        type=str,
        default="models",
        help="Directory containing similarity artifacts (default: models)"
    )

    parser.add_argument(
        "--explain",
        action="store_true",
        help="Show per-product confidence scores"
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    try:
        service = build_service(args.interactions_csv, args.model_dir, args.catalog)
        result = service.get_recommendations(args.user_id, args.type, args.limit)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (StyleRecException, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print_result(result, explain=args.explain)
    print()


if __name__ == "__main__":
    main()
