"""Shared cache of serialized dashboard responses, keyed by canonical filter."""

import hashlib
import json

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import FastRedisClient, fast_redis

from ..domain.models import CallerIdentity, CanonicalFilter

logger = get_logger(__name__)

KEY_PREFIX = "dashboard:result:"


def cache_key(
    identity: CallerIdentity,
    canonical_filter: CanonicalFilter,
    *,
    limit: int | None = None,
    offset: int = 0,
) -> str:
    # Role is part of the key: row-level security differs between roles
    material = {
        "role": identity.role,
        "filter": canonical_filter.to_dict(),
        "limit": limit,
        "offset": offset,
    }
    digest = hashlib.sha256(json.dumps(material, sort_keys=True).encode()).hexdigest()
    return f"{KEY_PREFIX}{digest}"


class DashboardResultCache:
    def __init__(self, client: FastRedisClient | None = None, ttl_s: int | None = None):
        self.client = client or fast_redis
        self.ttl_s = ttl_s or settings.DASHBOARD_STALE_TIME_S

    @property
    def enabled(self) -> bool:
        return self.client.enabled

    async def get(self, key: str) -> str | None:
        if not self.enabled:
            return None
        payload = await self.client.get(key)
        if payload is not None:
            logger.debug("Dashboard cache hit", key=key[-12:])
        return payload

    async def set(self, key: str, payload: str) -> bool:
        if not self.enabled:
            return False
        return await self.client.set_with_ttl(key, payload, self.ttl_s)
