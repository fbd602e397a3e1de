from __future__ import annotations

from fastapi import Request

from sparrow_routing.core.exceptions import AppError
from sparrow_routing.services.routing import RouteResolver


def get_route_resolver(request: Request) -> RouteResolver:
    resolver = getattr(request.app.state, "route_resolver", None)
    if resolver is None:
        raise AppError(code="routing_unavailable", message="Route resolver is not initialized", status_code=503)
    return resolver
