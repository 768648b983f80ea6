"""
Time-series package: dense per-day buckets for the performance chart.
"""

from .service import bucketize

__all__ = ["bucketize"]
