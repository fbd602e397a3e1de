from __future__ import annotations

import abc
import html
import logging
import re
from typing import Any

import httpx

from sparrow_routing.core.enums import ProviderId, TransportMode
from sparrow_routing.models.route import Coordinate, Route, RouteInstruction, RouteRequest, RouteSummary
from sparrow_routing.services.error_classifier import ProviderResponseError
from sparrow_routing.services.polyline import decode, decode_flexible, encode
from sparrow_routing.services.routing.dto import (
    GoogleDirectionsResponse,
    GoogleRoute,
    HereRoute,
    HereRoutingResponse,
    MapboxDirectionsResponse,
    MapboxRoute,
)

logger = logging.getLogger(__name__)

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def _strip_html(value: str) -> str:
    text = _HTML_TAG_RE.sub(" ", value)
    return _WHITESPACE_RE.sub(" ", html.unescape(text)).strip()


def _non_empty(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ProviderClient(abc.ABC):
    """One external directions API.

    ``fetch_directions`` performs a single HTTP exchange and raises on any
    failure status, including failures reported inside a 200 body.
    ``parse_routes`` turns the raw payload into normalized routes and returns
    an empty list when the payload holds no usable route.
    """

    provider_id: ProviderId

    def __init__(self, api_key: str, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.api_key = api_key
        self._transport = transport

    @abc.abstractmethod
    def mode_token(self, mode: TransportMode) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    async def fetch_directions(
        self,
        request: RouteRequest,
        *,
        alternatives: bool,
        timeout: httpx.Timeout,
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abc.abstractmethod
    def parse_routes(self, payload: dict[str, Any], request: RouteRequest) -> list[Route]:
        raise NotImplementedError

    def error_from_body(self, payload: dict[str, Any]) -> ProviderResponseError | None:
        """Failure reported inside the JSON body, if any."""
        return None

    async def _get_json(self, url: str, params: Any, timeout: httpx.Timeout) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            response = await client.get(url, params=params)
        if response.is_error:
            # Some providers pair an error status with a more specific body code.
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                error = self.error_from_body(body)
                if error is not None:
                    raise error
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"{self.provider_id.value} returned a non-object payload")
        error = self.error_from_body(payload)
        if error is not None:
            raise error
        return payload


class GoogleDirectionsProvider(ProviderClient):
    provider_id = ProviderId.GOOGLE_MAPS
    base_url = "https://maps.googleapis.com/maps/api/directions/json"

    _modes = {
        TransportMode.CAR: "driving",
        TransportMode.BICYCLE: "bicycling",
        TransportMode.WALKING: "walking",
        # Google has no motorcycle mode; driving is the closest routing profile.
        TransportMode.MOTORCYCLE: "driving",
    }
    _status_codes = {
        "ZERO_RESULTS": 400,
        "NOT_FOUND": 400,
        "INVALID_REQUEST": 400,
        "MAX_WAYPOINTS_EXCEEDED": 400,
        "REQUEST_DENIED": 403,
        "OVER_DAILY_LIMIT": 403,
        "OVER_QUERY_LIMIT": 429,
    }

    def mode_token(self, mode: TransportMode) -> str:
        return self._modes.get(mode, "driving")

    def build_params(self, request: RouteRequest, alternatives: bool) -> dict[str, str]:
        mode = self.mode_token(request.transport_mode)
        params = {
            "origin": request.origin.as_lat_lon(),
            "destination": request.destination.as_lat_lon(),
            "mode": mode,
            "alternatives": "true" if alternatives else "false",
            "key": self.api_key,
        }
        if request.waypoints:
            params["waypoints"] = "|".join(point.as_lat_lon() for point in request.waypoints)
        if request.avoid_tolls:
            params["avoid"] = "tolls"
        if request.use_traffic and mode == "driving":
            params["departure_time"] = "now"
            params["traffic_model"] = "best_guess"
        return params

    async def fetch_directions(
        self,
        request: RouteRequest,
        *,
        alternatives: bool,
        timeout: httpx.Timeout,
    ) -> dict[str, Any]:
        return await self._get_json(self.base_url, self.build_params(request, alternatives), timeout)

    def error_from_body(self, payload: dict[str, Any]) -> ProviderResponseError | None:
        status = payload.get("status")
        if not status or status == "OK":
            return None
        detail = payload.get("error_message") or status
        return ProviderResponseError(self._status_codes.get(status, 500), f"Google Directions: {detail}")

    def parse_routes(self, payload: dict[str, Any], request: RouteRequest) -> list[Route]:
        response = GoogleDirectionsResponse.model_validate(payload)
        routes: list[Route] = []
        for item in response.routes:
            route = self._to_route(item, request)
            if route is not None:
                routes.append(route)
        return routes

    def _to_route(self, item: GoogleRoute, request: RouteRequest) -> Route | None:
        points = item.overview_polyline.points
        if not item.legs or not points:
            return None

        instructions = tuple(
            RouteInstruction(
                text=_strip_html(step.html_instructions),
                distance_meters=float(step.distance.value),
                duration_seconds=int(step.duration.value),
            )
            for leg in item.legs
            for step in leg.steps
        )
        has_traffic = any(leg.duration_in_traffic is not None for leg in item.legs)
        return Route(
            coordinates=tuple(decode(points)),
            encoded_polyline=points,
            distance_meters=float(sum(leg.distance.value for leg in item.legs)),
            duration_seconds=int(sum(leg.duration.value for leg in item.legs)),
            provider=self.provider_id,
            summary=RouteSummary(
                start_address=_non_empty(item.legs[0].start_address),
                end_address=_non_empty(item.legs[-1].end_address),
                instructions=instructions,
                traffic_enabled=request.use_traffic and has_traffic,
            ),
        )


class MapboxDirectionsProvider(ProviderClient):
    provider_id = ProviderId.MAPBOX
    base_url = "https://api.mapbox.com/directions/v5/mapbox"

    _modes = {
        TransportMode.CAR: "driving",
        TransportMode.BICYCLE: "cycling",
        TransportMode.WALKING: "walking",
        TransportMode.MOTORCYCLE: "driving",
    }
    _status_codes = {
        "NoRoute": 400,
        "NoSegment": 400,
        "InvalidInput": 400,
        "ProfileNotFound": 400,
        "InvalidToken": 401,
        "NotAuthorized": 401,
        "Forbidden": 403,
        "TooManyCoordinates": 400,
    }

    def mode_token(self, mode: TransportMode) -> str:
        return self._modes.get(mode, "driving")

    def profile(self, request: RouteRequest) -> str:
        token = self.mode_token(request.transport_mode)
        if token == "driving" and request.use_traffic:
            return "driving-traffic"
        return token

    def build_params(self, request: RouteRequest, alternatives: bool) -> dict[str, str]:
        params = {
            "access_token": self.api_key,
            "alternatives": "true" if alternatives else "false",
            "geometries": "polyline",
            "overview": "full",
            "steps": "true",
        }
        if request.avoid_tolls:
            params["exclude"] = "toll"
        return params

    def build_url(self, request: RouteRequest) -> str:
        # Mapbox expects lon,lat pairs separated by semicolons.
        coordinates = ";".join(point.as_lon_lat() for point in request.points)
        return f"{self.base_url}/{self.profile(request)}/{coordinates}"

    async def fetch_directions(
        self,
        request: RouteRequest,
        *,
        alternatives: bool,
        timeout: httpx.Timeout,
    ) -> dict[str, Any]:
        return await self._get_json(self.build_url(request), self.build_params(request, alternatives), timeout)

    def error_from_body(self, payload: dict[str, Any]) -> ProviderResponseError | None:
        code = payload.get("code")
        if not code or code == "Ok":
            return None
        detail = payload.get("message") or code
        return ProviderResponseError(self._status_codes.get(code, 500), f"Mapbox Directions: {detail}")

    def parse_routes(self, payload: dict[str, Any], request: RouteRequest) -> list[Route]:
        response = MapboxDirectionsResponse.model_validate(payload)
        start_address = _non_empty(response.waypoints[0].name) if response.waypoints else None
        end_address = _non_empty(response.waypoints[-1].name) if response.waypoints else None
        traffic_enabled = self.profile(request) == "driving-traffic"

        routes: list[Route] = []
        for item in response.routes:
            route = self._to_route(item, start_address, end_address, traffic_enabled)
            if route is not None:
                routes.append(route)
        return routes

    def _to_route(
        self,
        item: MapboxRoute,
        start_address: str | None,
        end_address: str | None,
        traffic_enabled: bool,
    ) -> Route | None:
        if not item.legs or not item.geometry:
            return None

        instructions = tuple(
            RouteInstruction(
                text=step.maneuver.instruction,
                distance_meters=float(step.distance),
                duration_seconds=int(round(step.duration)),
            )
            for leg in item.legs
            for step in leg.steps
            if step.maneuver is not None and step.maneuver.instruction
        )
        return Route(
            coordinates=tuple(decode(item.geometry)),
            encoded_polyline=item.geometry,
            distance_meters=float(item.distance),
            duration_seconds=int(round(item.duration)),
            provider=self.provider_id,
            summary=RouteSummary(
                start_address=start_address,
                end_address=end_address,
                instructions=instructions,
                traffic_enabled=traffic_enabled,
            ),
        )


class HereRoutingProvider(ProviderClient):
    provider_id = ProviderId.HERE
    base_url = "https://router.hereapi.com/v8/routes"
    max_alternatives = 3

    _modes = {
        TransportMode.CAR: "car",
        TransportMode.BICYCLE: "bicycle",
        TransportMode.WALKING: "pedestrian",
        TransportMode.MOTORCYCLE: "car",
    }

    def mode_token(self, mode: TransportMode) -> str:
        return self._modes.get(mode, "car")

    def build_params(self, request: RouteRequest, alternatives: bool) -> list[tuple[str, str]]:
        params = [
            ("apikey", self.api_key),
            ("origin", request.origin.as_lat_lon()),
            ("destination", request.destination.as_lat_lon()),
            ("transportMode", self.mode_token(request.transport_mode)),
            ("return", "polyline,summary,actions,instructions"),
        ]
        params.extend(("via", point.as_lat_lon()) for point in request.waypoints)
        if alternatives:
            params.append(("alternatives", str(self.max_alternatives)))
        if request.avoid_tolls:
            params.append(("avoid[features]", "tollRoad"))
        if not request.use_traffic:
            # "any" makes HERE ignore live and historical traffic.
            params.append(("departureTime", "any"))
        return params

    async def fetch_directions(
        self,
        request: RouteRequest,
        *,
        alternatives: bool,
        timeout: httpx.Timeout,
    ) -> dict[str, Any]:
        return await self._get_json(self.base_url, self.build_params(request, alternatives), timeout)

    def parse_routes(self, payload: dict[str, Any], request: RouteRequest) -> list[Route]:
        response = HereRoutingResponse.model_validate(payload)
        if not response.routes and response.notices:
            logger.info(
                "HERE returned no routes",
                extra={"notices": [notice.code or notice.title for notice in response.notices]},
            )

        routes: list[Route] = []
        for item in response.routes:
            route = self._to_route(item, request)
            if route is not None:
                routes.append(route)
        return routes

    def _to_route(self, item: HereRoute, request: RouteRequest) -> Route | None:
        sections = [section for section in item.sections if section.polyline]
        if not sections:
            return None

        coordinates: list[Coordinate] = []
        for section in sections:
            points = decode_flexible(section.polyline)
            # Consecutive sections share their boundary point.
            if coordinates and points and coordinates[-1] == points[0]:
                points = points[1:]
            coordinates.extend(points)

        instructions = tuple(
            RouteInstruction(
                text=action.instruction,
                distance_meters=float(action.length),
                duration_seconds=int(action.duration),
            )
            for section in sections
            for action in section.actions
            if action.instruction
        )
        return Route(
            coordinates=tuple(coordinates),
            encoded_polyline=encode(coordinates),
            distance_meters=float(sum(section.summary.length for section in sections)),
            duration_seconds=int(sum(section.summary.duration for section in sections)),
            provider=self.provider_id,
            summary=RouteSummary(
                instructions=instructions,
                traffic_enabled=request.use_traffic,
            ),
        )
