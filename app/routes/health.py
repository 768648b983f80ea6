# app/routes/health.py
"""
Health check endpoints with database pool and cache monitoring.
"""

import time

from fastapi import APIRouter

from app.config import settings
from app.db.pool import db_health_check
from app.features.appointment_dashboard.domain.errors import ConfigurationError
from app.infrastructure.observability.logging import log_health_check
from app.services.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "appointment-dashboard"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check with all dependencies.

    The result cache is optional: when REDIS_URL is unset it reports as
    disabled and does not affect readiness.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool (profiles lookups)
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        latency_ms = round((time.time() - t0) * 1000, 1)

        checks["database"] = {"ok": is_healthy, "latency_ms": latency_ms}
        if "pool_stats" in db_health:
            pool_stats = db_health["pool_stats"]
            checks["database"].update(
                {
                    "pool_size": pool_stats.get("pool_size", 0),
                    "pool_available": pool_stats.get("pool_available", 0),
                    "pool_utilization_percent": pool_stats.get("pool_utilization_percent", 0),
                    "connection_time_ms": db_health.get("connection_time_ms", 0),
                }
            )
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
            if "error_type" in db_health:
                checks["database"]["error_type"] = db_health["error_type"]

        log_health_check("database", is_healthy, latency_ms, checks["database"].get("error"))
        overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 2) Result cache
    t0 = time.time()
    redis_health = await fast_redis.health_check()
    latency_ms = round((time.time() - t0) * 1000, 1)
    checks["redis"] = {
        "ok": redis_health["healthy"],
        "enabled": redis_health["enabled"],
        "latency_ms": latency_ms,
    }
    if not redis_health["healthy"]:
        checks["redis"]["error"] = redis_health.get("error", "Redis set/get failed")
    if redis_health["enabled"]:
        log_health_check("redis", redis_health["healthy"], latency_ms, checks["redis"].get("error"))
    overall_ok = overall_ok and redis_health["healthy"]

    # 3) Configuration
    config_issues = []
    if not settings.SUPABASE_DB_URL:
        config_issues.append("SUPABASE_DB_URL not set")
    if not settings.SUPABASE_URL:
        config_issues.append("SUPABASE_URL not set")
    try:
        settings.dashboard_timezone()
    except ConfigurationError as e:
        config_issues.append(e.message)

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
        "business_timezone": settings.DASHBOARD_BUSINESS_TIMEZONE,
    }
    overall_ok = overall_ok and not config_issues

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()
