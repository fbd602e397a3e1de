"""Provider response shapes.

These models only exist to parse raw provider JSON. Adapters translate them
into ``Route`` immediately; nothing outside ``services.routing`` sees them.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)


# Google Directions API


class GoogleTextValue(_ProviderModel):
    text: str = ""
    value: float = 0


class GooglePolyline(_ProviderModel):
    points: str = ""


class GoogleStep(_ProviderModel):
    distance: GoogleTextValue = Field(default_factory=GoogleTextValue)
    duration: GoogleTextValue = Field(default_factory=GoogleTextValue)
    html_instructions: str = ""
    travel_mode: str | None = None


class GoogleLeg(_ProviderModel):
    distance: GoogleTextValue = Field(default_factory=GoogleTextValue)
    duration: GoogleTextValue = Field(default_factory=GoogleTextValue)
    duration_in_traffic: GoogleTextValue | None = None
    start_address: str | None = None
    end_address: str | None = None
    steps: list[GoogleStep] = Field(default_factory=list)


class GoogleRoute(_ProviderModel):
    overview_polyline: GooglePolyline = Field(default_factory=GooglePolyline)
    legs: list[GoogleLeg] = Field(default_factory=list)
    summary: str | None = None
    warnings: list[str] = Field(default_factory=list)


class GoogleDirectionsResponse(_ProviderModel):
    status: str
    routes: list[GoogleRoute] = Field(default_factory=list)
    error_message: str | None = None


# Mapbox Directions API v5


class MapboxManeuver(_ProviderModel):
    instruction: str | None = None
    type: str | None = None
    modifier: str | None = None
    location: list[float] = Field(default_factory=list)


class MapboxStep(_ProviderModel):
    maneuver: MapboxManeuver | None = None
    name: str | None = None
    distance: float = 0
    duration: float = 0


class MapboxLeg(_ProviderModel):
    steps: list[MapboxStep] = Field(default_factory=list)
    summary: str | None = None
    distance: float = 0
    duration: float = 0


class MapboxRoute(_ProviderModel):
    geometry: str = ""
    legs: list[MapboxLeg] = Field(default_factory=list)
    distance: float = 0
    duration: float = 0
    weight_name: str | None = None


class MapboxWaypoint(_ProviderModel):
    name: str | None = None
    location: list[float] = Field(default_factory=list)


class MapboxDirectionsResponse(_ProviderModel):
    code: str
    message: str | None = None
    routes: list[MapboxRoute] = Field(default_factory=list)
    waypoints: list[MapboxWaypoint] = Field(default_factory=list)


# HERE Routing API v8


class HereLocation(_ProviderModel):
    lat: float
    lng: float


class HerePlace(_ProviderModel):
    type: str | None = None
    location: HereLocation | None = None


class HereWaypoint(_ProviderModel):
    place: HerePlace | None = None


class HereSummary(_ProviderModel):
    length: float = 0
    duration: float = 0
    base_duration: float | None = Field(default=None, alias="baseDuration")


class HereAction(_ProviderModel):
    action: str | None = None
    instruction: str | None = None
    length: float = 0
    duration: float = 0


class HereSection(_ProviderModel):
    id: str | None = None
    polyline: str = ""
    summary: HereSummary = Field(default_factory=HereSummary)
    departure: HereWaypoint | None = None
    arrival: HereWaypoint | None = None
    actions: list[HereAction] = Field(default_factory=list)


class HereRoute(_ProviderModel):
    id: str | None = None
    sections: list[HereSection] = Field(default_factory=list)


class HereNotice(_ProviderModel):
    title: str | None = None
    code: str | None = None


class HereRoutingResponse(_ProviderModel):
    routes: list[HereRoute] = Field(default_factory=list)
    notices: list[HereNotice] = Field(default_factory=list)
