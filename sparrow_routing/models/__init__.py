from sparrow_routing.models.route import Coordinate, Route, RouteInstruction, RouteRequest, RouteSummary

__all__ = [
    "Coordinate",
    "Route",
    "RouteInstruction",
    "RouteRequest",
    "RouteSummary",
]
