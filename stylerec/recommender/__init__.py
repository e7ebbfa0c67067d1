"""Recommendation core for StyleRec.

This module contains the interaction ledger, the similarity engine that
turns sparse interaction data into user and product similarity edges, the
recommendation generator, and the expiring recommendation cache.
"""
