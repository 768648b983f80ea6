from .dashboard_service import DashboardService, RecordSource  # noqa: F401
from .query_controller import DebouncedQueryController, QueryState  # noqa: F401
from .result_cache import DashboardResultCache, cache_key  # noqa: F401
from .retry_policy import RetryPolicy  # noqa: F401
