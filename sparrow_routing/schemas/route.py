from __future__ import annotations

from pydantic import BaseModel, Field

from sparrow_routing.core.enums import ConnectionQuality, ProviderId, TransportMode
from sparrow_routing.models.route import Coordinate, Route, RouteRequest


class RoutePoint(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.lat, longitude=self.lon)


class RouteResolveRequest(BaseModel):
    origin: RoutePoint
    destination: RoutePoint
    waypoints: list[RoutePoint] = Field(default_factory=list, max_length=23)
    transport_mode: TransportMode = TransportMode.CAR
    avoid_tolls: bool = False
    use_traffic: bool = False
    provider: ProviderId | None = None

    def to_domain(self) -> RouteRequest:
        return RouteRequest(
            origin=self.origin.to_coordinate(),
            destination=self.destination.to_coordinate(),
            waypoints=tuple(point.to_coordinate() for point in self.waypoints),
            transport_mode=self.transport_mode,
            avoid_tolls=self.avoid_tolls,
            use_traffic=self.use_traffic,
        )


class RouteInstructionResponse(BaseModel):
    text: str
    distance_m: float
    duration_sec: int


class RouteResponse(BaseModel):
    provider: ProviderId
    distance_m: float
    distance_km: float
    duration_sec: int
    duration_min: int
    encoded_polyline: str
    geometry_latlon: list[list[float]]
    start_address: str | None = None
    end_address: str | None = None
    traffic_enabled: bool = False
    instructions: list[RouteInstructionResponse] = Field(default_factory=list)

    @classmethod
    def from_route(cls, route: Route) -> RouteResponse:
        return cls(
            provider=route.provider,
            distance_m=route.distance_meters,
            distance_km=route.distance_kilometers,
            duration_sec=route.duration_seconds,
            duration_min=route.duration_minutes,
            encoded_polyline=route.encoded_polyline,
            geometry_latlon=[[point.latitude, point.longitude] for point in route.coordinates],
            start_address=route.summary.start_address,
            end_address=route.summary.end_address,
            traffic_enabled=route.summary.traffic_enabled,
            instructions=[
                RouteInstructionResponse(
                    text=item.text,
                    distance_m=item.distance_meters,
                    duration_sec=item.duration_seconds,
                )
                for item in route.summary.instructions
            ],
        )


class ProvidersResponse(BaseModel):
    providers: list[ProviderId]
    connection_quality: ConnectionQuality
