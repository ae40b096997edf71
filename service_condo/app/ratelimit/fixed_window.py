"""
Fixed-window rate limiter backed by the shared store.
"""

import dataclasses
import math
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple, TYPE_CHECKING

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from condo_shared.config import Settings
from condo_shared.errors import RateLimitError, StoreError
from condo_shared.logging import get_logger
from .policies import RATE_LIMIT_PREFIX, RateLimitPolicy, general_policy
from ..routing import CallNext
from ..store.memory_counter import MemoryCounterStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from condo_shared.metrics import MetricsCollector
    from ..store.redis_store import RedisStore


IdentityFunction = Callable[[Request], str]


class CounterStore(Protocol):
    async def increment_with_expiry(self, key: str, window_ms: int) -> Tuple[int, int]:
        ...


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one admission check."""

    allowed: bool
    limit: int
    remaining: int
    reset_in_seconds: int
    current_count: int = 0
    fail_open: bool = False


class RateLimiter:
    """Per-client request budget, usable as route or application middleware.

    The counter backend is chosen by ``select_backend()``: the shared store
    when the policy allows it and the store is ready, otherwise a counter map
    local to this process.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        store: Optional["RedisStore"] = None,
        *,
        identity_fn: Optional[IdentityFunction] = None,
        trust_forwarded: bool = False,
        fallback: Optional[MemoryCounterStore] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.policy = policy
        self.store = store
        self.identity_fn = identity_fn
        self.trust_forwarded = trust_forwarded
        self.fallback = fallback if fallback is not None else MemoryCounterStore()
        self.metrics = metrics
        self.logger = get_logger("condo.rate_limiter")
        self.backend: CounterStore = self.fallback
        self.select_backend()

    @property
    def uses_shared_store(self) -> bool:
        return self.store is not None and self.backend is self.store

    def select_backend(self) -> str:
        """Bind the counter backend. Returns ``"shared"`` or ``"memory"``."""
        if self.policy.use_shared_store and self.store is not None and self.store.is_ready():
            self.backend = self.store
            return "shared"

        self.backend = self.fallback
        if self.policy.use_shared_store:
            self.logger.warning(
                "Shared store unavailable, rate limiting with in-process counters",
                policy=self.policy.name,
            )
        return "memory"

    def client_identity(self, request: Request) -> str:
        """Identity sharing one rate window (the client address by default)."""
        if self.identity_fn is not None:
            return self.identity_fn(request)

        if self.trust_forwarded:
            forwarded_for = request.headers.get("X-Forwarded-For")
            if forwarded_for:
                return forwarded_for.split(",")[0].strip()
            real_ip = request.headers.get("X-Real-IP")
            if real_ip:
                return real_ip

        return request.client.host if request.client else "unknown"

    def _make_key(self, identity: str) -> str:
        return f"{self.policy.key_prefix}{identity}"

    def _fail_open(self) -> RateLimitDecision:
        self._record("fail_open")
        return RateLimitDecision(
            allowed=True,
            limit=self.policy.max_requests,
            remaining=self.policy.max_requests,
            reset_in_seconds=math.ceil(self.policy.window_ms / 1000),
            fail_open=True,
        )

    async def check(self, identity: str) -> RateLimitDecision:
        """Count one request for ``identity`` and decide whether to admit it."""
        if self.uses_shared_store and not self.store.is_ready():
            return self._fail_open()

        key = self._make_key(identity)
        try:
            count, ttl_ms = await self.backend.increment_with_expiry(key, self.policy.window_ms)
        except StoreError as exc:
            self.logger.error("Rate limit check error", key=key, error=str(exc))
            return self._fail_open()

        limit = self.policy.max_requests
        allowed = count <= limit
        decision = RateLimitDecision(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - count),
            reset_in_seconds=max(0, math.ceil(ttl_ms / 1000)),
            current_count=count,
        )

        if allowed:
            self._record("admitted")
        else:
            self._record("rejected")
            self.logger.warning(
                "Rate limit exceeded",
                policy=self.policy.name,
                client_id=identity,
                current_count=count,
                limit=limit,
            )
        return decision

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        try:
            identity = self.client_identity(request)
        except Exception as exc:
            self.logger.error("Rate limit identity function failed", error=str(exc))
            return await call_next(request)

        decision = await self.check(identity)
        request.state.rate_limit_decision = decision
        if not decision.allowed:
            error = RateLimitError(self.policy.message, {"policy": self.policy.name})
            response = JSONResponse(status_code=error.status_code, content=error.to_body())
            response.headers["Retry-After"] = str(decision.reset_in_seconds)
        else:
            response = await call_next(request)

        # A route limiter further in overwrites the recorded decision, which
        # survives its endpoint raising before any headers were set.
        set_rate_limit_headers(response, getattr(request.state, "rate_limit_decision", decision))
        return response

    def _record(self, decision: str) -> None:
        if self.metrics:
            self.metrics.record_rate_limit(self.policy.name, decision)


def set_rate_limit_headers(response: Response, decision: RateLimitDecision) -> None:
    """Propagate rate limiting metadata via the standard headers.

    A route limiter runs inside the application-wide one, so headers already
    set further in describe the stricter policy and are kept.
    """
    if "RateLimit-Limit" in response.headers:
        return
    response.headers["RateLimit-Limit"] = str(decision.limit)
    response.headers["RateLimit-Remaining"] = str(decision.remaining)
    response.headers["RateLimit-Reset"] = str(decision.reset_in_seconds)


def build_limiter(
    policy: RateLimitPolicy,
    store: Optional["RedisStore"] = None,
    **kwargs,
) -> RateLimiter:
    """Build a limiter middleware for ``policy``."""
    return RateLimiter(policy, store, **kwargs)


def create_limiter(
    store: Optional["RedisStore"] = None,
    *,
    settings: Optional[Settings] = None,
    name: str = "custom",
    window_ms: Optional[int] = None,
    max_requests: Optional[int] = None,
    key_prefix: Optional[str] = None,
    use_shared_store: bool = True,
    message: Optional[str] = None,
    **kwargs,
) -> RateLimiter:
    """Per-route limiter built on the general policy defaults.

    Counters default to their own ``rate-limit:<name>:`` namespace so a route
    limiter never bumps the app-wide counter for the same client.
    """
    base = general_policy(settings)
    if key_prefix is None:
        key_prefix = f"{RATE_LIMIT_PREFIX}{name}:"
    overrides = {
        "name": name,
        "window_ms": window_ms,
        "max_requests": max_requests,
        "key_prefix": key_prefix,
        "use_shared_store": use_shared_store,
        "message": message,
    }
    policy = dataclasses.replace(base, **{k: v for k, v in overrides.items() if v is not None})
    if settings is not None:
        kwargs.setdefault("trust_forwarded", settings.trust_forwarded)
    return RateLimiter(policy, store, **kwargs)
