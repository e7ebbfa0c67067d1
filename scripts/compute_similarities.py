"""Command-line interface for the batch similarity computation.

Loads interaction history (and optionally a product catalog) from CSV,
computes user, product and content similarity edges, and saves them as
artifacts the API loads on startup.

Example:
    Compute with default settings:
        $ python scripts/compute_similarities.py data/fake_interactions.csv

    Compute Pearson user similarity and content edges:
        $ python scripts/compute_similarities.py data/interactions.csv \\
            --catalog data/catalog.csv \\
            --user-method pearson \\
            --output-dir models/production
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from stylerec.config import RecommenderSettings
from stylerec.recommender.models import (
    PRODUCT_SIMILARITY_METHODS,
    USER_SIMILARITY_METHODS,
    SimilarityMethod,
)
from stylerec.recommender.service import RecommendationService
from stylerec.recommender.utils import load_interactions_csv, load_product_catalog_csv


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the script.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Namespace object containing parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Compute similarity edges from interaction CSV data.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Compute with default settings
  python scripts/compute_similarities.py data/interactions.csv

  # Include content similarity from a catalog
  python scripts/compute_similarities.py data/interactions.csv --catalog data/catalog.csv

  # Compute with verbose logging
  python scripts/compute_similarities.py data/interactions.csv --verbose
        """,
    )

    parser.add_argument(
        "csv_path",
        type=str,
        help="Path to CSV file containing interaction data with columns: "
        "user_id, product_id, interaction_type[, value, timestamp, session_id]",
    )

    parser.add_argument(
        "--catalog",
        type=str,
        default=None,
        help="Optional product catalog CSV for content similarity",
    )

    parser.add_argument(
        "--output-dir",
        type=str,
        default="models",
        help="Directory where similarity artifacts will be saved (default: models)",
    )

    parser.add_argument(
        "--user-method",
        type=str,
        choices=sorted(method.value for method in USER_SIMILARITY_METHODS),
        default=SimilarityMethod.COSINE.value,
        help="User-user similarity method (default: cosine)",
    )

    parser.add_argument(
        "--product-method",
        type=str,
        choices=sorted(method.value for method in PRODUCT_SIMILARITY_METHODS),
        default=SimilarityMethod.COSINE.value,
        help="Product-product similarity method (default: cosine)",
    )

    parser.add_argument(
        "--min-score",
        type=float,
        default=0.0,
        help="Drop edges scoring below this value (default: 0.0)",
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=4,
        help="Worker threads for pair scoring (default: 4)",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point for the similarity script.

    Returns:
        Exit code: 0 on success, 1 on error.
    """
    try:
        args = parse_arguments()

        setup_logging(verbose=args.verbose)
        logger = logging.getLogger(__name__)

        settings = RecommenderSettings(
            user_similarity_method=args.user_method,
            product_similarity_method=args.product_method,
            min_similarity_score=args.min_score,
            max_workers=args.workers,
            model_dir=args.output_dir,
        )
        service = RecommendationService(settings=settings)

        logger.info("=" * 70)
        logger.info("Similarity Configuration")
        logger.info("=" * 70)
        logger.info(f"CSV path:         {args.csv_path}")
        logger.info(f"Catalog:          {args.catalog or '-'}")
        logger.info(f"Output directory: {args.output_dir}")
        logger.info(f"User method:      {settings.user_similarity_method.value}")
        logger.info(f"Product method:   {settings.product_similarity_method.value}")
        logger.info("=" * 70)

        for event in load_interactions_csv(args.csv_path):
            service.ledger.record(event)
        if args.catalog:
            service.register_products(load_product_catalog_csv(args.catalog).values())

        reports = service.refresh_similarities()
        service.save_artifacts()

        logger.info("=" * 70)
        logger.info("Similarity Summary")
        logger.info("=" * 70)
        for report in reports:
            logger.info(
                f"{report.kind:<8} {report.method.value:<8} "
                f"entities={report.entities} edges={report.edges_written} "
                f"skipped={report.pairs_skipped} "
                f"below_threshold={report.pairs_below_threshold} "
                f"({report.duration_ms} ms)"
            )
        logger.info(f"Artifacts saved to: {Path(args.output_dir).absolute()}")
        logger.info("=" * 70)

        logger.info("Similarity computation completed successfully!")
        return 0

    except FileNotFoundError as e:
        logging.error(f"File error: {e}")
        return 1
    except ValueError as e:
        logging.error(f"Validation error: {e}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Computation interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
