"""
Response cache for idempotent read routes.

Successful JSON GET responses are memoized in the shared store under a
``cache:`` key and replayed with ``X-Cache: HIT`` until their TTL expires.
Any store problem degrades to a plain pass-through; the cache never turns a
request into an error.
"""

import json
from typing import Any, Callable, Optional, TYPE_CHECKING
from urllib.parse import parse_qsl, urlencode

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from condo_shared.errors import StoreError
from condo_shared.logging import get_logger
from .responses import CapturedResponse, add_background_task
from ..routing import CallNext, RouteMiddleware

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from condo_shared.metrics import MetricsCollector
    from ..store.redis_store import RedisStore


CACHE_PREFIX = "cache:"
CACHE_HEADER = "X-Cache"
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

KeyFunction = Callable[[Request], str]

_MISS = object()


def is_json(response: Response) -> bool:
    """Whether the response declares a JSON body, the only kind replayed on a hit."""
    media_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def default_cache_key(request: Request) -> str:
    """``cache:`` + request path + query string with parameters sorted by name.

    The sort is stable, so repeated parameters keep their relative order.
    """
    key = f"{CACHE_PREFIX}{request.url.path}"
    query = request.url.query
    if query:
        params = sorted(parse_qsl(query, keep_blank_values=True), key=lambda item: item[0])
        key = f"{key}?{urlencode(params)}"
    return key


class ResponseCache:
    """Builds cache middleware for read routes over one shared store."""

    def __init__(self, store: "RedisStore", *, metrics: Optional["MetricsCollector"] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("condo.cache")

    def decorate(self, ttl_seconds: int, key_fn: Optional[KeyFunction] = None) -> RouteMiddleware:
        """Return route middleware caching JSON 200 responses for ``ttl_seconds``."""
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be a positive integer, got {ttl_seconds!r}")
        make_key = key_fn or default_cache_key

        async def cache_middleware(request: Request, call_next: CallNext) -> Response:
            if not self.store.is_ready() or request.method in MUTATING_METHODS:
                return await call_next(request)

            try:
                key = make_key(request)
            except Exception as exc:
                self.logger.error("Cache key function failed", path=request.url.path, error=str(exc))
                return await call_next(request)

            cached = await self._lookup(key)
            if cached is not _MISS:
                return JSONResponse(cached, status_code=200, headers={CACHE_HEADER: "HIT"})

            response = await call_next(request)
            if response.status_code != 200:
                return response
            if not is_json(response):
                self.logger.debug("Response is not JSON, not caching", key=key)
                return response

            response = await CapturedResponse.capture(response)
            try:
                payload = response.body.decode(response.charset)
            except UnicodeDecodeError:
                self.logger.warning("Response body is not text, not caching", key=key)
                return response

            response.headers[CACHE_HEADER] = "MISS"
            add_background_task(response, self._store_entry, key, payload, ttl_seconds)
            return response

        return cache_middleware

    async def _lookup(self, key: str) -> Any:
        """Read and decode a cached payload, or return ``_MISS``."""
        try:
            raw = await self.store.get(key)
        except StoreError as exc:
            self.logger.error("Cache read failed", key=key, error=str(exc))
            self._record_lookup("error")
            return _MISS

        if raw is None:
            self._record_lookup("miss")
            return _MISS

        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            self.logger.error("Cached payload is malformed", key=key, error=str(exc))
            self._record_lookup("error")
            return _MISS

        self._record_lookup("hit")
        return payload

    async def _store_entry(self, key: str, payload: str, ttl_seconds: int) -> None:
        """Background write of a cache entry; failures are logged only."""
        if not self.store.is_ready():
            return
        try:
            await self.store.set_with_expiry(key, payload, ttl_seconds)
        except StoreError as exc:
            self.logger.error("Cache write failed", key=key, error=str(exc))
            if self.metrics:
                self.metrics.record_cache_write("error")
            return

        self.logger.debug("Cached response", key=key, ttl=ttl_seconds)
        if self.metrics:
            self.metrics.record_cache_write("ok")

    def _record_lookup(self, result: str) -> None:
        if self.metrics:
            self.metrics.record_cache_lookup(result)
