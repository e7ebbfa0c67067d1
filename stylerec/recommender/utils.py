"""Utility functions for the recommendation system.

This module provides helper functions for data loading, sparse matrix
construction, similarity artifact management, and common operations used
throughout the recommendation system.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import joblib
import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix

from stylerec.recommender.models import (
    InteractionEvent,
    InteractionType,
    ProductAttributes,
    SimilarityMethod,
)
from stylerec.recommender.store import (
    SimilarityStore,
    product_similarity_store,
    user_similarity_store,
)

# Configure module logger
logger = logging.getLogger(__name__)

# Artifact filenames
USER_SIMILARITY_FILENAME = "user_similarity.joblib"
PRODUCT_SIMILARITY_FILENAME = "product_similarity.joblib"

INTERACTION_COLUMNS = ("user_id", "product_id", "interaction_type")


def build_interaction_matrix(
    vectors: Mapping[int, Mapping[int, float]],
    binary: bool = False,
) -> Tuple[csr_matrix, Dict[int, int], Dict[int, int]]:
    """Convert sparse preference vectors into a CSR matrix.

    Rows are the vector owners (users for user vectors, products for product
    vectors) and columns are the dimensions they were scored on.

    Args:
        vectors: Mapping of row id to a mapping of column id to score.
        binary: If True, every stored entry is 1 (presence only).

    Returns:
        A tuple containing:
            - Sparse CSR matrix of shape (n_rows, n_columns)
            - Dictionary mapping row id to matrix row index
            - Dictionary mapping column id to matrix column index

    Example:
        >>> matrix, user_map, product_map = build_interaction_matrix(
        ...     {1: {10: 5.0, 11: 4.0}, 2: {10: 5.0}}
        ... )
        >>> matrix.shape
        (2, 2)
    """
    row_ids = sorted(vectors.keys())
    column_ids = sorted({column for row in vectors.values() for column in row})

    row_index = {row_id: idx for idx, row_id in enumerate(row_ids)}
    column_index = {column_id: idx for idx, column_id in enumerate(column_ids)}

    rows: List[int] = []
    columns: List[int] = []
    data: List[float] = []
    for row_id, row in vectors.items():
        for column_id, value in row.items():
            rows.append(row_index[row_id])
            columns.append(column_index[column_id])
            data.append(1.0 if binary else float(value))

    matrix = csr_matrix(
        (np.asarray(data, dtype=np.float64), (rows, columns)),
        shape=(len(row_ids), len(column_ids)),
        dtype=np.float64,
    )

    if binary:
        # Presence matrix: explicit zeros still count as an interaction
        matrix.data[:] = 1.0
    else:
        matrix.eliminate_zeros()

    logger.debug(
        "Built interaction matrix",
        extra={"shape": list(matrix.shape), "nnz": int(matrix.nnz), "binary": binary},
    )
    return matrix, row_index, column_index


def load_interactions_csv(csv_path: str) -> List[InteractionEvent]:
    """Load interaction events from a CSV file.

    Required columns are ``user_id``, ``product_id`` and ``interaction_type``.
    Optional columns ``value``, ``timestamp`` and ``session_id`` are used when
    present. Rows come back sorted by timestamp.

    Args:
        csv_path: Path to CSV file containing interaction data.

    Returns:
        List of events, not yet recorded in any ledger.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If CSV is missing required columns or is empty.
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"Loading interactions from {csv_path}")
    df = pd.read_csv(csv_path)

    missing = set(INTERACTION_COLUMNS) - set(df.columns)
    if missing:
        raise ValueError(f"CSV missing required columns: {missing}")

    if df.empty:
        raise ValueError("Cannot load interactions from empty CSV")

    if "timestamp" in df.columns:
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    else:
        df["timestamp"] = pd.Timestamp.now(tz="UTC")
    df = df.sort_values("timestamp", kind="stable").reset_index(drop=True)

    events = []
    for row in df.itertuples(index=False):
        value = getattr(row, "value", None)
        session_id = getattr(row, "session_id", None)
        events.append(
            InteractionEvent(
                user_id=int(row.user_id),
                product_id=int(row.product_id),
                interaction_type=InteractionType.parse(row.interaction_type),
                timestamp=row.timestamp.to_pydatetime(),
                value=None if value is None or pd.isna(value) else float(value),
                session_id=None if session_id is None or pd.isna(session_id) else str(session_id),
            )
        )

    logger.info(f"Loaded {len(events)} interaction records")
    return events


def events_to_frame(events: Iterable[InteractionEvent]) -> pd.DataFrame:
    """Flatten events into a DataFrame with one row per event."""
    records = [
        {
            "event_id": event.event_id,
            "user_id": event.user_id,
            "product_id": event.product_id,
            "interaction_type": event.interaction_type.value,
            "value": event.value,
            "weighted_score": event.weighted_score,
            "timestamp": event.timestamp,
            "session_id": event.session_id,
        }
        for event in events
    ]
    columns = [
        "event_id",
        "user_id",
        "product_id",
        "interaction_type",
        "value",
        "weighted_score",
        "timestamp",
        "session_id",
    ]
    return pd.DataFrame.from_records(records, columns=columns)


def load_product_catalog_csv(csv_path: str) -> Dict[int, ProductAttributes]:
    """Load product attributes (category, brand, color, ...) from CSV.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If the ``product_id`` column is missing.
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    df = pd.read_csv(csv_path)
    if "product_id" not in df.columns:
        raise ValueError("CSV missing required columns: {'product_id'}")

    catalog = {}
    for record in df.to_dict(orient="records"):
        attributes = {
            name: (None if pd.isna(record.get(name)) else str(record.get(name)))
            for name in ProductAttributes.ATTRIBUTE_FIELDS
            if name in record
        }
        product_id = int(record["product_id"])
        catalog[product_id] = ProductAttributes(product_id=product_id, **attributes)

    logger.info(f"Loaded attributes for {len(catalog)} products")
    return catalog


def _edges_payload(store: SimilarityStore) -> Dict[str, list]:
    payload: Dict[str, list] = {}
    for edge in store.edges():
        payload.setdefault(edge.method.value, []).append(
            (edge.left_id, edge.right_id, edge.score, edge.computed_at)
        )
    return payload


def _restore_edges(store: SimilarityStore, payload: Dict[str, list]) -> int:
    edges = [
        store.edge_type(left_id, right_id, score, SimilarityMethod(method), computed_at)
        for method, rows in payload.items()
        for left_id, right_id, score, computed_at in rows
    ]
    return store.upsert_many(edges)


def save_similarity_artifacts(
    user_store: SimilarityStore,
    product_store: SimilarityStore,
    output_dir: str,
) -> None:
    """Save similarity edges to disk.

    Creates the directory if it doesn't exist.

    Args:
        user_store: Store holding user similarity edges.
        product_store: Store holding product similarity edges.
        output_dir: Directory path where artifacts will be saved.

    Raises:
        OSError: If unable to create output directory or save files.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    logger.info(f"Saving similarity artifacts to {output_dir}")

    user_path = output_path / USER_SIMILARITY_FILENAME
    joblib.dump(_edges_payload(user_store), user_path)
    logger.info(f"Saved {user_store.count()} user edges to {user_path}")

    product_path = output_path / PRODUCT_SIMILARITY_FILENAME
    joblib.dump(_edges_payload(product_store), product_path)
    logger.info(f"Saved {product_store.count()} product edges to {product_path}")


def load_similarity_artifacts(
    model_dir: str,
    user_store: Optional[SimilarityStore] = None,
    product_store: Optional[SimilarityStore] = None,
) -> Tuple[SimilarityStore, SimilarityStore]:
    """Load similarity edges from disk into (new or given) stores.

    Raises:
        FileNotFoundError: If any required artifact file is missing.
    """
    model_path = Path(model_dir)
    if not model_path.exists():
        raise FileNotFoundError(f"Model directory does not exist: {model_dir}")

    user_store = user_store if user_store is not None else user_similarity_store()
    product_store = product_store if product_store is not None else product_similarity_store()

    user_file, product_file = get_artifact_paths(model_dir)
    for path in (user_file, product_file):
        if not path.exists():
            raise FileNotFoundError(f"Similarity artifact not found: {path}")

    user_payload = joblib.load(user_file)
    product_payload = joblib.load(product_file)

    # Loaded edges replace whatever the stores held.
    user_store.clear()
    product_store.clear()
    user_count = _restore_edges(user_store, user_payload)
    product_count = _restore_edges(product_store, product_payload)

    logger.info(
        f"Loaded similarity artifacts from {model_dir}",
        extra={"user_edges": user_count, "product_edges": product_count},
    )
    return user_store, product_store


def get_artifact_paths(model_dir: str) -> Tuple[Path, Path]:
    """Get file paths for similarity artifacts without loading them."""
    model_path = Path(model_dir)
    return (
        model_path / USER_SIMILARITY_FILENAME,
        model_path / PRODUCT_SIMILARITY_FILENAME,
    )


def check_artifacts_exist(model_dir: str) -> bool:
    """Check if all similarity artifacts exist."""
    return all(path.exists() for path in get_artifact_paths(model_dir))
