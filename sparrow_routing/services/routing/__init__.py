from sparrow_routing.services.routing.cache import RouteCache
from sparrow_routing.services.routing.providers import (
    GoogleDirectionsProvider,
    HereRoutingProvider,
    MapboxDirectionsProvider,
    ProviderClient,
)
from sparrow_routing.services.routing.resolver import RouteResolver, build_providers, build_route_resolver

__all__ = [
    "GoogleDirectionsProvider",
    "HereRoutingProvider",
    "MapboxDirectionsProvider",
    "ProviderClient",
    "RouteCache",
    "RouteResolver",
    "build_providers",
    "build_route_resolver",
]
