"""
Rate limit policies.
"""

from dataclasses import dataclass
from typing import Optional

from condo_shared.config import Settings

RATE_LIMIT_PREFIX = "rate-limit:"
AUTH_RATE_LIMIT_PREFIX = "rate-limit:auth:"

GENERAL_MESSAGE = "Muitas requisições, por favor tente novamente mais tarde."
AUTH_MESSAGE = "Muitas tentativas de login. Tente novamente mais tarde."

MINUTE_MS = 60 * 1000


@dataclass(frozen=True)
class RateLimitPolicy:
    """Fixed-window budget: ``max_requests`` per client per ``window_ms``."""

    name: str
    window_ms: int
    max_requests: int
    key_prefix: str = RATE_LIMIT_PREFIX
    use_shared_store: bool = True
    message: str = GENERAL_MESSAGE

    def __post_init__(self):
        if self.window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {self.window_ms}")
        if self.max_requests <= 0:
            raise ValueError(f"max_requests must be positive, got {self.max_requests}")


def general_policy(settings: Optional[Settings] = None) -> RateLimitPolicy:
    """Policy applied to the whole API (15 minutes / 100 requests by default)."""
    window_minutes = settings.rate_limit_window if settings else 15
    max_requests = settings.rate_limit_max if settings else 100
    return RateLimitPolicy(
        name="api",
        window_ms=window_minutes * MINUTE_MS,
        max_requests=max_requests,
    )


# Login attempts: 10 per hour per client.
AUTH_POLICY = RateLimitPolicy(
    name="auth",
    window_ms=60 * MINUTE_MS,
    max_requests=10,
    key_prefix=AUTH_RATE_LIMIT_PREFIX,
    message=AUTH_MESSAGE,
)
