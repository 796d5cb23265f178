"""Query-string normalization."""

from collectra.query.normalizer import normalize_query, normalize_value

__all__ = ["normalize_query", "normalize_value"]
