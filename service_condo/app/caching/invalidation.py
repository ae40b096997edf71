"""
Cache invalidation for mutating routes.
"""

from typing import Optional, TYPE_CHECKING

from fastapi import Request, Response

from condo_shared.errors import StoreError
from condo_shared.logging import get_logger
from .response_cache import CACHE_PREFIX
from .responses import add_background_task
from ..routing import CallNext, RouteMiddleware, route_base_path

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from condo_shared.metrics import MetricsCollector
    from ..store.redis_store import RedisStore


def default_invalidation_pattern(request: Request) -> str:
    """``cache:`` + the route's base path + ``*``."""
    return f"{CACHE_PREFIX}{route_base_path(request)}*"


class CacheInvalidator:
    """Evicts cached responses after successful mutations.

    Eviction runs after the response has been flushed, so a read issued
    right after a write can still see the old entry until the delete lands.
    """

    def __init__(self, store: "RedisStore", *, metrics: Optional["MetricsCollector"] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("condo.cache.invalidation")

    def decorate(self, pattern: Optional[str] = None) -> RouteMiddleware:
        """Return route middleware that evicts ``pattern`` on 2xx responses."""

        async def invalidation_middleware(request: Request, call_next: CallNext) -> Response:
            response = await call_next(request)
            if 200 <= response.status_code < 300:
                key_pattern = pattern or default_invalidation_pattern(request)
                add_background_task(response, self.invalidate, key_pattern)
            return response

        return invalidation_middleware

    async def invalidate(self, pattern: str) -> int:
        """Delete every key matching ``pattern``. Returns the number deleted."""
        if not self.store.is_ready():
            return 0

        try:
            keys = await self.store.keys_matching(pattern)
            deleted = await self.store.delete_many(keys)
        except StoreError as exc:
            self.logger.error("Cache invalidation failed", pattern=pattern, error=str(exc))
            return 0

        if deleted:
            self.logger.debug("Cache invalidated", pattern=pattern, keys_count=deleted)
        if self.metrics:
            self.metrics.record_invalidation(deleted)
        return deleted
