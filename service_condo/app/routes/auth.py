"""
Authentication routes, guarded by the stricter login rate limit.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from condo_shared.errors import AuthenticationError
from ..ratelimit import RateLimiter
from ..routing import LayeredRoute, with_middleware

# (email, password) -> session payload, or None when the credentials are wrong
Authenticator = Callable[[str, str], Awaitable[Optional[Dict[str, Any]]]]


class LoginRequest(BaseModel):
    email: str
    password: str


async def reject_all(email: str, password: str) -> Optional[Dict[str, Any]]:
    """Authenticator used until a credential backend is configured."""
    return None


def auth_router(limiter: RateLimiter, authenticate: Authenticator = reject_all) -> APIRouter:
    router = APIRouter(prefix="/auth", tags=["auth"], route_class=LayeredRoute)

    @router.post("/login")
    @with_middleware(limiter)
    async def login(credentials: LoginRequest):
        session = await authenticate(credentials.email, credentials.password)
        if session is None:
            raise AuthenticationError("Credenciais inválidas")
        return {"status": "success", "data": session}

    return router
