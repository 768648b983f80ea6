"""
Filtering package: access scope, filter normalization and record matching.
"""

from .normalizer import current_week, normalize_filter
from .record_filter import filter_records, record_matches
from .scope import resolve_company_scope, resolve_for_identity

__all__ = [
    "current_week",
    "filter_records",
    "normalize_filter",
    "record_matches",
    "resolve_company_scope",
    "resolve_for_identity",
]
