"""
Aggregation package: KPI metrics and attribute breakdowns computed from a
filtered record subset.
"""

from .breakdowns import build_breakdown
from .service import aggregate_metrics, count_dispositions, percentage, unique_names

__all__ = [
    "aggregate_metrics",
    "build_breakdown",
    "count_dispositions",
    "percentage",
    "unique_names",
]
