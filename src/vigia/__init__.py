"""Vigía: ingesta, deduplicación y agregación de resultados electorales en vivo.

English:
    Vigía: live election-result ingestion, deduplication and aggregation.
"""

__version__ = "0.1.0"
