"""
Shared Redis store client for the cache and rate-limit layers.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, Set, Tuple, TYPE_CHECKING

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from condo_shared.errors import StoreError
from condo_shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from condo_shared.metrics import MetricsCollector


# INCR then arm the expiry only for a fresh counter, so the window is fixed
# from the first hit. Returns {count, remaining ttl in ms}.
INCREMENT_WITH_EXPIRY = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""

SCAN_COUNT = 500


class StoreAvailability(str, Enum):
    """Process-wide availability of the shared store."""

    CONNECTING = "connecting"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class RedisStore:
    """Single process-wide handle on the shared key-value store.

    Every operation is a network round trip and raises ``StoreError`` on
    failure. Connection failures also flip availability to UNAVAILABLE; a
    background watcher started by ``start()`` pings the server and flips it
    back to READY once the connection recovers.
    """

    def __init__(
        self,
        url: str,
        *,
        socket_timeout: float = 5.0,
        health_check_interval: float = 30.0,
        client: Optional[redis.Redis] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.url = url
        self.health_check_interval = health_check_interval
        self.logger = get_logger("condo.store")
        self.metrics = metrics
        self._client = client if client is not None else redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
        )
        self._availability = StoreAvailability.CONNECTING
        self._watcher: Optional[asyncio.Task] = None

    @property
    def availability(self) -> StoreAvailability:
        return self._availability

    def is_ready(self) -> bool:
        """Whether consumers may use the store right now."""
        return self._availability is StoreAvailability.READY

    def _set_availability(self, state: StoreAvailability, error: Optional[str] = None) -> None:
        previous = self._availability
        if previous is state:
            return
        self._availability = state

        if state is StoreAvailability.READY:
            if previous is StoreAvailability.UNAVAILABLE:
                self.logger.info("Store connection restored", url=self._safe_url())
            else:
                self.logger.info("Store connected", url=self._safe_url())
        elif state is StoreAvailability.UNAVAILABLE:
            self.logger.error("Store unavailable", url=self._safe_url(), error=error)

        if self.metrics:
            self.metrics.set_store_available(state is StoreAvailability.READY)

    def _safe_url(self) -> str:
        """Connection URL without the password."""
        if "@" not in self.url:
            return self.url
        scheme, _, rest = self.url.partition("://")
        return f"{scheme}://***@{rest.split('@', 1)[1]}"

    async def connect(self) -> bool:
        """Perform the handshake once. Logs the outcome, never raises."""
        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            self._set_availability(StoreAvailability.UNAVAILABLE, str(exc))
            return False
        self._set_availability(StoreAvailability.READY)
        return True

    async def start(self) -> None:
        """Connect and keep watching the connection in the background."""
        await self.connect()
        if self._watcher is None and self.health_check_interval > 0:
            self._watcher = asyncio.create_task(self._watch(), name="store-watcher")

    async def _watch(self) -> None:
        while True:
            await asyncio.sleep(self.health_check_interval)
            await self.connect()

    async def close(self) -> None:
        if self._watcher is not None:
            self._watcher.cancel()
            try:
                await self._watcher
            except asyncio.CancelledError:
                pass
            self._watcher = None
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            self.logger.warning("Store close failed", error=str(exc))
        self.logger.info("Store closed")

    async def _call(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await call()
        except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
            self._set_availability(StoreAvailability.UNAVAILABLE, str(exc))
            raise StoreError(operation, str(exc)) from exc
        except RedisError as exc:
            raise StoreError(operation, str(exc)) from exc

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", lambda: self._client.get(key))

    async def set_with_expiry(self, key: str, value: Any, ttl_seconds: int) -> bool:
        result = await self._call("set", lambda: self._client.set(key, value, ex=ttl_seconds))
        return bool(result)

    async def delete_many(self, keys: Iterable[str]) -> int:
        """Delete keys in one round trip. Returns the number deleted."""
        keys = list(keys)
        if not keys:
            return 0
        return int(await self._call("delete", lambda: self._client.delete(*keys)))

    async def keys_matching(self, pattern: str) -> Set[str]:
        """Enumerate keys matching a glob pattern.

        Uses SCAN so a large keyspace is walked incrementally; the cost is
        still proportional to the total number of keys.
        """
        async def _scan() -> Set[str]:
            return {key async for key in self._client.scan_iter(match=pattern, count=SCAN_COUNT)}

        return await self._call("scan", _scan)

    async def increment_with_expiry(self, key: str, window_ms: int) -> Tuple[int, int]:
        """Atomically bump a window counter. Returns (count, ttl_ms)."""
        count, ttl = await self._call(
            "increment",
            lambda: self._client.eval(INCREMENT_WITH_EXPIRY, 1, key, window_ms),
        )
        return int(count), int(ttl)
