"""Generate fake storefront interaction data for testing and development.

This module provides functionality to create synthetic fashion storefront data
for testing the recommendation subsystem. It generates two CSV files: a stream
of user-product interactions (views, wishlists, cart adds, ratings and
purchases) and a product catalog with the attributes used for content
similarity.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_data.py

    Or import and use programmatically:
        from scripts.generate_fake_data import generate_fake_interactions
        df = generate_fake_interactions(num_users=100, num_products=200)
"""

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pandas as pd

# Default configuration constants
DEFAULT_NUM_USERS = 50
DEFAULT_NUM_PRODUCTS = 100
DEFAULT_NUM_INTERACTIONS = 2000
DEFAULT_DAYS_BACK = 30
SECONDS_PER_DAY = 86400

# Funnel-shaped mix: most events are views, few are purchases
INTERACTION_MIX = {
    "view": 0.60,
    "wishlist": 0.10,
    "add_to_cart": 0.15,
    "rating": 0.05,
    "purchase": 0.10,
}

CATEGORIES = ["dresses", "shirts", "jeans", "jackets", "shoes", "accessories"]
BRANDS = ["northwind", "alder", "monarch", "tidewater", "kestrel"]
COLORS = ["black", "white", "navy", "red", "olive", "beige"]
MATERIALS = ["cotton", "denim", "wool", "linen", "leather", "polyester"]
GENDERS = ["women", "men", "unisex"]
SEASONS = ["spring", "summer", "autumn", "winter", "all"]


def generate_fake_interactions(
    num_users: int = DEFAULT_NUM_USERS,
    num_products: int = DEFAULT_NUM_PRODUCTS,
    num_interactions: int = DEFAULT_NUM_INTERACTIONS,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> pd.DataFrame:
    """Generate synthetic interaction events.

    Each user browses within a couple of preferred categories most of the
    time so that collaborative filtering has structure to find.

    Args:
        num_users: Number of unique users to simulate. Must be positive.
        num_products: Number of unique products available. Must be positive.
        num_interactions: Total number of events to generate. Must be positive.
        start_date: Start of the timestamp range. Defaults to 30 days before
            ``end_date``.
        end_date: End of the timestamp range. Defaults to now (UTC).

    Returns:
        DataFrame with columns user_id, product_id, interaction_type, value,
        timestamp and session_id, sorted by timestamp.

    Raises:
        ValueError: If any numeric parameter is non-positive or if
            start_date is not before end_date.
    """
    if num_users <= 0 or num_products <= 0 or num_interactions <= 0:
        raise ValueError(
            "num_users, num_products, and num_interactions must be positive"
        )

    if end_date is None:
        end_date = datetime.now(timezone.utc)
    if start_date is None:
        start_date = end_date - timedelta(days=DEFAULT_DAYS_BACK)
    if start_date >= end_date:
        raise ValueError("start_date must be before end_date")

    # Products are split into category buckets; users favour two of them
    buckets = {
        category: [pid for pid in range(1, num_products + 1) if pid % len(CATEGORIES) == i]
        for i, category in enumerate(CATEGORIES)
    }
    buckets = {category: pids for category, pids in buckets.items() if pids}
    preferences = {
        user_id: random.sample(sorted(buckets), k=min(2, len(buckets)))
        for user_id in range(1, num_users + 1)
    }

    types = list(INTERACTION_MIX)
    weights = list(INTERACTION_MIX.values())
    total_seconds = int((end_date - start_date).total_seconds())

    interactions = []
    for _ in range(num_interactions):
        user_id = random.randint(1, num_users)
        if random.random() < 0.8:
            category = random.choice(preferences[user_id])
            product_id = random.choice(buckets[category])
        else:
            product_id = random.randint(1, num_products)

        interaction_type = random.choices(types, weights=weights)[0]
        value = float(random.randint(1, 5)) if interaction_type == "rating" else None
        timestamp = start_date + timedelta(seconds=random.randrange(max(total_seconds, 1)))

        interactions.append({
            "user_id": user_id,
            "product_id": product_id,
            "interaction_type": interaction_type,
            "value": value,
            "timestamp": timestamp,
            "session_id": f"s-{user_id}-{timestamp:%Y%m%d}",
        })

    df = pd.DataFrame(interactions)
    df = df.sort_values("timestamp").reset_index(drop=True)

    return df


def generate_fake_catalog(num_products: int = DEFAULT_NUM_PRODUCTS) -> pd.DataFrame:
    """Generate product attributes consistent with ``generate_fake_interactions``.

    Raises:
        ValueError: If num_products is non-positive.
    """
    if num_products <= 0:
        raise ValueError("num_products must be positive")

    products = []
    for product_id in range(1, num_products + 1):
        products.append({
            "product_id": product_id,
            "category": CATEGORIES[product_id % len(CATEGORIES)],
            "brand": random.choice(BRANDS),
            "color": random.choice(COLORS),
            "material": random.choice(MATERIALS),
            "gender": random.choice(GENDERS),
            "season": random.choice(SEASONS),
        })
    return pd.DataFrame(products)


def main() -> None:
    """Main entry point for the data generation script.

    Writes data/fake_interactions.csv and data/fake_catalog.csv and prints
    summary statistics upon completion.
    """
    num_users = DEFAULT_NUM_USERS
    num_products = DEFAULT_NUM_PRODUCTS
    num_interactions = DEFAULT_NUM_INTERACTIONS

    print(f"Generating {num_interactions} fake interactions...")
    print(f"Users: {num_users}, Products: {num_products}")

    try:
        interactions = generate_fake_interactions(
            num_users=num_users,
            num_products=num_products,
            num_interactions=num_interactions,
        )
        catalog = generate_fake_catalog(num_products=num_products)
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    data_dir = Path(__file__).parent.parent / "data"
    data_dir.mkdir(exist_ok=True)

    interactions_path = data_dir / "fake_interactions.csv"
    catalog_path = data_dir / "fake_catalog.csv"
    interactions.to_csv(interactions_path, index=False)
    catalog.to_csv(catalog_path, index=False)

    print(f"\nData generated successfully!")
    print(f"Interactions saved to: {interactions_path}")
    print(f"Catalog saved to: {catalog_path}")
    print(f"\nData preview:")
    print(interactions.head(10))
    print(f"\nData summary:")
    print(f"  Total interactions: {len(interactions)}")
    print(f"  Unique users: {interactions['user_id'].nunique()}")
    print(f"  Unique products: {interactions['product_id'].nunique()}")
    print(f"  By type:")
    for interaction_type, count in interactions["interaction_type"].value_counts().items():
        print(f"    {interaction_type}: {count}")
    print(
        f"  Date range: {interactions['timestamp'].min()} to {interactions['timestamp'].max()}"
    )


if __name__ == "__main__":
    main()
