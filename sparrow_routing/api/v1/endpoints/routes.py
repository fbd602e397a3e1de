from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from sparrow_routing.api.deps import get_route_resolver
from sparrow_routing.core.responses import success_response
from sparrow_routing.schemas.route import ProvidersResponse, RouteResolveRequest, RouteResponse
from sparrow_routing.services.routing import RouteResolver

router = APIRouter(prefix="/routes", tags=["Routes"])


@router.post("/resolve")
async def resolve_route(
    request: Request,
    payload: RouteResolveRequest,
    resolver: RouteResolver = Depends(get_route_resolver),
):
    route_request = payload.to_domain()
    if payload.provider is not None:
        route = await resolver.resolve_route_with_provider(route_request, payload.provider)
    else:
        route = await resolver.resolve_route(route_request)
    return success_response(data=RouteResponse.from_route(route).model_dump(mode="json"), request=request)


@router.post("/alternatives")
async def resolve_route_alternatives(
    request: Request,
    payload: RouteResolveRequest,
    resolver: RouteResolver = Depends(get_route_resolver),
):
    routes = await resolver.resolve_route_alternatives(payload.to_domain())
    data = [RouteResponse.from_route(route).model_dump(mode="json") for route in routes]
    return success_response(data=data, request=request)


@router.get("/providers")
async def list_providers(
    request: Request,
    resolver: RouteResolver = Depends(get_route_resolver),
):
    data = ProvidersResponse(
        providers=resolver.provider_ids,
        connection_quality=resolver.probe.current_quality(),
    )
    return success_response(data=data.model_dump(mode="json"), request=request)
