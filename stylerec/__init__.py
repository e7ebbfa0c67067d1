"""StyleRec: recommendation subsystem for the clothing storefront.

This package turns raw user-product interaction events into precomputed
similarity data and per-user ranked product recommendations, served from a
time-bounded cache.

Modules:
    recommender: interaction ledger, similarity engine, generator and cache
    api: FastAPI application exposing the recommendation boundary
"""

__version__ = "0.1.0"
