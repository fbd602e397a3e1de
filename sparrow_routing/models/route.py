from __future__ import annotations

import math
from dataclasses import dataclass, field

from sparrow_routing.core.enums import ProviderId, TransportMode


def _is_valid_lat_lon(lat: float, lon: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lon <= 180


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            raise ValueError(f"Coordinate must be finite: {self.latitude}, {self.longitude}")
        if not _is_valid_lat_lon(self.latitude, self.longitude):
            raise ValueError(f"Coordinate out of range: {self.latitude}, {self.longitude}")

    # Fixed notation; providers reject the exponent form repr gives near zero.
    def as_lat_lon(self) -> str:
        return f"{self.latitude:.6f},{self.longitude:.6f}"

    def as_lon_lat(self) -> str:
        return f"{self.longitude:.6f},{self.latitude:.6f}"


@dataclass(frozen=True, slots=True)
class RouteRequest:
    origin: Coordinate
    destination: Coordinate
    waypoints: tuple[Coordinate, ...] = ()
    transport_mode: TransportMode = TransportMode.CAR
    avoid_tolls: bool = False
    use_traffic: bool = False

    def __post_init__(self) -> None:
        # Accept any sequence from callers but keep the request hashable and immutable.
        object.__setattr__(self, "waypoints", tuple(self.waypoints))

    @property
    def points(self) -> tuple[Coordinate, ...]:
        return (self.origin, *self.waypoints, self.destination)


@dataclass(frozen=True, slots=True)
class RouteInstruction:
    text: str
    distance_meters: float
    duration_seconds: int


@dataclass(frozen=True, slots=True)
class RouteSummary:
    start_address: str | None = None
    end_address: str | None = None
    instructions: tuple[RouteInstruction, ...] = ()
    traffic_enabled: bool = False


@dataclass(frozen=True, slots=True)
class Route:
    coordinates: tuple[Coordinate, ...]
    encoded_polyline: str
    distance_meters: float
    duration_seconds: int
    provider: ProviderId
    summary: RouteSummary = field(default_factory=RouteSummary)

    def __post_init__(self) -> None:
        object.__setattr__(self, "coordinates", tuple(self.coordinates))
        if self.distance_meters < 0:
            raise ValueError(f"distance_meters must be >= 0, got {self.distance_meters}")
        if self.duration_seconds < 0:
            raise ValueError(f"duration_seconds must be >= 0, got {self.duration_seconds}")

    @property
    def distance_kilometers(self) -> float:
        return self.distance_meters / 1000

    @property
    def duration_minutes(self) -> int:
        return self.duration_seconds // 60
