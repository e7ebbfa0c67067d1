"""FastAPI application module for StyleRec.

This module contains the FastAPI application, route handlers, and API
endpoints through which the storefront records interactions and reads
recommendations.
"""
