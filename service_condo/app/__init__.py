"""
API service package for the condominium back office.

The service fronts the CRUD routes with:
- Response caching of idempotent reads in the shared store
- Cache invalidation after successful writes
- Per-client rate limiting, stricter on authentication routes

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.store: Redis client and the in-process counter fallback.
- app.caching: Response cache and invalidation middleware.
- app.ratelimit: Fixed-window limiter and its policies.
- app.routing: Route-level middleware composition.
- app.routes: Resource and authentication routers.
"""
