"""
Domain subpackage for the appointment dashboard feature.
"""

from .errors import (
    AuthorizationError,
    ConfigurationError,
    DashboardError,
    TransientFetchError,
    ValidationError,
)
from .models import (
    DISPOSITIONS,
    PRIVILEGED_ROLES,
    ROLES,
    AppointmentBreakdown,
    AppointmentRecord,
    CallerIdentity,
    CanonicalFilter,
    CategoryShare,
    DailyBucket,
    DashboardResult,
    DateRange,
    FilterOptions,
    FilterRequest,
    MetricsSummary,
)

__all__ = [
    "DISPOSITIONS",
    "PRIVILEGED_ROLES",
    "ROLES",
    "AppointmentBreakdown",
    "AppointmentRecord",
    "AuthorizationError",
    "CallerIdentity",
    "CanonicalFilter",
    "CategoryShare",
    "ConfigurationError",
    "DailyBucket",
    "DashboardError",
    "DashboardResult",
    "DateRange",
    "FilterOptions",
    "FilterRequest",
    "MetricsSummary",
    "TransientFetchError",
    "ValidationError",
]
