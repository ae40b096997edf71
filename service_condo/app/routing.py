"""
Route-level middleware for FastAPI endpoints.

A route middleware has the same shape as a Starlette HTTP middleware,
``async (request, call_next) -> Response``, but wraps a single endpoint
instead of the whole application::

    router = APIRouter(route_class=LayeredRoute)

    @router.get("/condominios")
    @with_middleware(response_cache.decorate(300))
    async def list_condominios(): ...

``with_middleware`` must sit below the router decorator so the endpoint is
tagged before the route is registered.
"""

import re
from typing import Awaitable, Callable, Tuple

from fastapi import Request, Response
from fastapi.routing import APIRoute

CallNext = Callable[[Request], Awaitable[Response]]
RouteMiddleware = Callable[[Request, CallNext], Awaitable[Response]]

MIDDLEWARE_ATTR = "__route_middleware__"

_PARAM_SEGMENT = re.compile(r"\{[^}]*\}")


def with_middleware(*middleware: RouteMiddleware):
    """Attach route middleware to an endpoint, outermost first."""

    def decorator(endpoint):
        existing: Tuple[RouteMiddleware, ...] = getattr(endpoint, MIDDLEWARE_ATTR, ())
        setattr(endpoint, MIDDLEWARE_ATTR, tuple(middleware) + existing)
        return endpoint

    return decorator


def _bind(middleware: RouteMiddleware, call_next: CallNext) -> CallNext:
    async def handler(request: Request) -> Response:
        return await middleware(request, call_next)

    return handler


class LayeredRoute(APIRoute):
    """APIRoute that runs the endpoint's route middleware around its handler."""

    def get_route_handler(self) -> CallNext:
        handler = super().get_route_handler()
        for middleware in reversed(getattr(self.endpoint, MIDDLEWARE_ATTR, ())):
            handler = _bind(middleware, handler)

        async def route_handler(request: Request) -> Response:
            request.scope.setdefault("route", self)
            return await handler(request)

        return route_handler


def route_base_path(request: Request) -> str:
    """Request path up to the first path parameter of the matched route.

    ``/api/condominios/7/estatisticas`` matched by
    ``/condominios/{id}/estatisticas`` gives ``/api/condominios``. The route
    template may not carry the prefixes of the routers it was included in,
    so the segments from the first parameter on are counted in the template
    and cut from the end of the request path.
    """
    path = request.url.path.rstrip("/")
    route = request.scope.get("route")
    template = getattr(route, "path", None)

    if template:
        segments = template.rstrip("/").split("/")
        for index, segment in enumerate(segments):
            if _PARAM_SEGMENT.search(segment):
                trailing = len(segments) - index
                path = "/".join(path.split("/")[:-trailing])
                break
    return path.rstrip("/") or "/"
