"""
Appointment dashboard feature package.

Role-scoped metrics over appointment records: scope resolution, filter
normalization, record filtering, KPI aggregation, daily bucketing, and a
debounced query controller in front of them. Every layer lives here, from
domain models to the HTTP router.
"""

from .api.router import router as dashboard_router  # noqa: F401
from .domain.models import CanonicalFilter, DashboardResult, FilterRequest  # noqa: F401
from .services.dashboard_service import DashboardService  # noqa: F401
from .services.query_controller import DebouncedQueryController  # noqa: F401
