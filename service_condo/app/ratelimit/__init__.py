"""
Rate limiting package.

Fixed-window, per-client request budgets kept in the shared store under the
``rate-limit:`` namespace, with an in-process fallback when the store is
unreachable.
"""

from .fixed_window import RateLimitDecision, RateLimiter, build_limiter, create_limiter
from .policies import AUTH_POLICY, RateLimitPolicy, general_policy

__all__ = [
    "AUTH_POLICY",
    "RateLimitDecision",
    "RateLimitPolicy",
    "RateLimiter",
    "build_limiter",
    "create_limiter",
    "general_policy",
]
