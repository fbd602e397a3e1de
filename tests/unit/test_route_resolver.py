from __future__ import annotations

import asyncio

import fakeredis.aioredis
import httpx
import pytest
from pydantic import ValidationError

from sparrow_routing.core.config import Settings
from sparrow_routing.core.enums import ConnectionQuality, ProviderId, TransportMode
from sparrow_routing.core.exceptions import (
    ApiKeyInvalidError,
    LocationNotFoundError,
    NoInternetError,
    ServerError,
    UnknownRoutingError,
)
from sparrow_routing.models.route import Coordinate, Route, RouteRequest
from sparrow_routing.services.connectivity import StaticConnectivityProbe
from sparrow_routing.services.polyline import PolylineDecodeError, decode
from sparrow_routing.services.retry import RetryExecutor, RetryPolicy
from sparrow_routing.services.routing import (
    GoogleDirectionsProvider,
    HereRoutingProvider,
    MapboxDirectionsProvider,
    ProviderClient,
    RouteCache,
    RouteResolver,
    build_route_resolver,
)

POLYLINE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"
REQUEST = RouteRequest(origin=Coordinate(38.5, -120.2), destination=Coordinate(43.252, -126.453))


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://maps.example.test")
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=httpx.Response(status, request=request))


class FakeProvider(ProviderClient):
    def __init__(
        self,
        provider_id: ProviderId,
        *,
        failures: list[BaseException] | None = None,
        routes: int = 1,
        polyline: str = POLYLINE,
    ) -> None:
        super().__init__("test-key")
        self.provider_id = provider_id
        self.failures = list(failures or [])
        self.routes = routes
        self.polyline = polyline
        self.calls: list[dict] = []

    def mode_token(self, mode: TransportMode) -> str:
        return mode.value

    async def fetch_directions(self, request, *, alternatives, timeout):
        self.calls.append({"alternatives": alternatives, "timeout": timeout})
        if self.failures:
            raise self.failures.pop(0)
        return {"count": self.routes}

    def parse_routes(self, payload, request) -> list[Route]:
        return [
            Route(
                coordinates=decode(self.polyline),
                encoded_polyline=self.polyline,
                distance_meters=1000.0 * (index + 1),
                duration_seconds=60 * (index + 1),
                provider=self.provider_id,
            )
            for index in range(payload["count"])
        ]


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _resolver(
    providers: list[ProviderClient],
    quality: ConnectionQuality = ConnectionQuality.WIFI,
    **kwargs,
) -> tuple[RouteResolver, RecordingSleep]:
    probe = StaticConnectivityProbe(quality)
    sleep = RecordingSleep()
    executor = RetryExecutor(probe, sleep=sleep)
    policy = kwargs.pop("policy", RetryPolicy(max_attempts=3, initial_delay_sec=1.0))
    return RouteResolver(providers, executor, probe, policy=policy, **kwargs), sleep


@pytest.mark.asyncio
async def test_first_provider_success_returns_its_route():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS)
    secondary = FakeProvider(ProviderId.MAPBOX)
    resolver, _ = _resolver([primary, secondary])

    route = await resolver.resolve_route(REQUEST)

    assert route.provider == ProviderId.GOOGLE_MAPS
    assert len(route.coordinates) == 3
    assert len(primary.calls) == 1
    assert secondary.calls == []


@pytest.mark.asyncio
async def test_falls_back_after_primary_exhausts_retries():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS, failures=[_status_error(500)] * 3)
    secondary = FakeProvider(ProviderId.MAPBOX)
    resolver, sleep = _resolver([primary, secondary])

    route = await resolver.resolve_route(REQUEST)

    assert route.provider == ProviderId.MAPBOX
    assert len(primary.calls) == 3
    assert len(secondary.calls) == 1
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_non_retryable_error_stops_the_chain():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS, failures=[_status_error(401)])
    secondary = FakeProvider(ProviderId.MAPBOX)
    resolver, sleep = _resolver([primary, secondary])

    with pytest.raises(ApiKeyInvalidError) as exc_info:
        await resolver.resolve_route(REQUEST)

    assert exc_info.value.provider == ProviderId.GOOGLE_MAPS
    assert exc_info.value.details["provider"] == "google"
    assert len(primary.calls) == 1
    assert secondary.calls == []
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_last_provider_error_is_surfaced_with_its_identity():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS, failures=[_status_error(500)])
    secondary = FakeProvider(ProviderId.HERE, failures=[_status_error(502)])
    resolver, _ = _resolver([primary, secondary], policy=RetryPolicy(max_attempts=1))

    with pytest.raises(ServerError) as exc_info:
        await resolver.resolve_route(REQUEST)

    assert exc_info.value.provider == ProviderId.HERE
    assert exc_info.value.upstream_status == 502


@pytest.mark.asyncio
async def test_location_not_found_is_terminal():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS, failures=[_status_error(400)])
    secondary = FakeProvider(ProviderId.MAPBOX)
    resolver, _ = _resolver([primary, secondary])

    with pytest.raises(LocationNotFoundError):
        await resolver.resolve_route(REQUEST)

    assert secondary.calls == []


@pytest.mark.asyncio
async def test_offline_fails_before_any_provider_call():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS)
    resolver, _ = _resolver([primary], quality=ConnectionQuality.NONE)

    with pytest.raises(NoInternetError):
        await resolver.resolve_route(REQUEST)

    assert primary.calls == []


@pytest.mark.asyncio
async def test_zero_providers_is_an_error():
    resolver, _ = _resolver([])

    with pytest.raises(UnknownRoutingError):
        await resolver.resolve_route(REQUEST)


@pytest.mark.asyncio
async def test_empty_routes_fall_back_to_next_provider():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS, routes=0)
    secondary = FakeProvider(ProviderId.MAPBOX)
    resolver, sleep = _resolver([primary, secondary])

    route = await resolver.resolve_route(REQUEST)

    assert route.provider == ProviderId.MAPBOX
    # Parsing happens once per successful HTTP exchange, not per retry.
    assert len(primary.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_malformed_polyline_never_yields_partial_geometry():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS, polyline=POLYLINE + "_")
    resolver, _ = _resolver([primary])

    with pytest.raises(UnknownRoutingError) as exc_info:
        await resolver.resolve_route(REQUEST)

    assert isinstance(exc_info.value.cause, PolylineDecodeError)
    assert isinstance(exc_info.value.__cause__, PolylineDecodeError)
    assert exc_info.value.provider == ProviderId.GOOGLE_MAPS


@pytest.mark.asyncio
async def test_alternatives_return_every_route():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS, routes=3)
    resolver, _ = _resolver([primary])

    routes = await resolver.resolve_route_alternatives(REQUEST)

    assert [route.distance_meters for route in routes] == [1000.0, 2000.0, 3000.0]
    assert primary.calls[0]["alternatives"] is True


@pytest.mark.asyncio
async def test_single_route_takes_the_first_alternative():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS, routes=3)
    resolver, _ = _resolver([primary])

    route = await resolver.resolve_route(REQUEST)

    assert route.distance_meters == 1000.0
    assert primary.calls[0]["alternatives"] is False


@pytest.mark.asyncio
async def test_resolve_with_provider_skips_fallback():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS)
    secondary = FakeProvider(ProviderId.MAPBOX, failures=[_status_error(403)])
    resolver, _ = _resolver([primary, secondary])

    with pytest.raises(ApiKeyInvalidError) as exc_info:
        await resolver.resolve_route_with_provider(REQUEST, ProviderId.MAPBOX)

    assert exc_info.value.provider == ProviderId.MAPBOX
    assert primary.calls == []


@pytest.mark.asyncio
async def test_resolve_with_unconfigured_provider():
    resolver, _ = _resolver([FakeProvider(ProviderId.GOOGLE_MAPS)])

    with pytest.raises(UnknownRoutingError):
        await resolver.resolve_route_with_provider(REQUEST, ProviderId.HERE)


@pytest.mark.asyncio
async def test_timeout_follows_connection_quality():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS)
    resolver, _ = _resolver([primary], quality=ConnectionQuality.CELLULAR_GOOD)

    await resolver.resolve_route(REQUEST)

    timeout = primary.calls[0]["timeout"]
    assert timeout.connect == 15.0
    assert timeout.read == 45.0
    assert timeout.write == 20.0


@pytest.mark.asyncio
async def test_adaptive_retry_uses_quality_policy():
    primary = FakeProvider(ProviderId.GOOGLE_MAPS, failures=[_status_error(500)] * 4)
    secondary = FakeProvider(ProviderId.MAPBOX)
    resolver, sleep = _resolver([primary, secondary], adaptive_retry=True)

    await resolver.resolve_route(REQUEST)

    # WIFI: two attempts, half a second apart.
    assert len(primary.calls) == 2
    assert sleep.delays == [0.5]


@pytest.mark.asyncio
async def test_cancellation_stops_the_chain():
    started = asyncio.Event()

    async def blocking_sleep(seconds: float) -> None:
        started.set()
        await asyncio.sleep(3600)

    probe = StaticConnectivityProbe(ConnectionQuality.WIFI)
    primary = FakeProvider(ProviderId.GOOGLE_MAPS, failures=[_status_error(500)])
    secondary = FakeProvider(ProviderId.MAPBOX)
    resolver = RouteResolver([primary, secondary], RetryExecutor(probe, sleep=blocking_sleep), probe)

    task = asyncio.create_task(resolver.resolve_route(REQUEST))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert secondary.calls == []


@pytest.mark.asyncio
async def test_cache_hit_skips_providers():
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    primary = FakeProvider(ProviderId.GOOGLE_MAPS)
    resolver, _ = _resolver([primary], cache=RouteCache(redis, ttl_sec=300))

    first = await resolver.resolve_route(REQUEST)
    second = await resolver.resolve_route(REQUEST)

    assert first == second
    assert len(primary.calls) == 1


@pytest.mark.asyncio
async def test_clear_cache_forces_a_fresh_provider_call():
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    primary = FakeProvider(ProviderId.GOOGLE_MAPS)
    resolver, _ = _resolver([primary], cache=RouteCache(redis, ttl_sec=300))

    await resolver.resolve_route(REQUEST)
    assert await resolver.clear_cache() == 1
    await resolver.resolve_route(REQUEST)

    assert len(primary.calls) == 2


@pytest.mark.asyncio
async def test_clear_cache_without_cache_is_a_no_op():
    resolver, _ = _resolver([FakeProvider(ProviderId.GOOGLE_MAPS)])

    assert await resolver.clear_cache() == 0


def test_build_route_resolver_uses_configured_order_and_credentials():
    settings = Settings(
        _env_file=None,
        google_maps_api_key="",
        mapbox_access_token="",
        here_api_key="here-key",
        route_provider_order="here,google",
        routes_cache_enabled=False,
    )

    resolver = build_route_resolver(settings)

    assert resolver.provider_ids == [ProviderId.HERE]
    assert resolver.cache is None
    assert resolver.policy.max_attempts == settings.route_retry_attempts


def test_build_route_resolver_keeps_order():
    settings = Settings(
        _env_file=None,
        google_maps_api_key="g",
        mapbox_access_token="",
        here_api_key="h",
        route_provider_order=["here", "google", "here"],
    )

    resolver = build_route_resolver(settings)

    assert resolver.provider_ids == [ProviderId.HERE, ProviderId.GOOGLE_MAPS]
    assert isinstance(resolver._providers[0], HereRoutingProvider)
    assert isinstance(resolver._providers[1], GoogleDirectionsProvider)


class ExplodingParseProvider(FakeProvider):
    def parse_routes(self, payload, request) -> list[Route]:
        raise OverflowError("cannot convert float infinity to integer")


@pytest.mark.asyncio
async def test_non_finite_provider_numbers_stay_in_the_error_taxonomy():
    body = (
        b'{"code": "Ok", "waypoints": [], "routes": [{"geometry": "' + POLYLINE.encode() + b'",'
        b' "distance": 10, "duration": Infinity, "legs": [{"steps": []}]}]}'
    )
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=body))
    resolver, _ = _resolver([MapboxDirectionsProvider("mapbox-token", transport=transport)])

    with pytest.raises(UnknownRoutingError) as exc_info:
        await resolver.resolve_route(REQUEST)

    assert isinstance(exc_info.value.cause, ValidationError)
    assert exc_info.value.provider == ProviderId.MAPBOX


@pytest.mark.asyncio
async def test_any_parse_failure_falls_back_as_unknown_error():
    primary = ExplodingParseProvider(ProviderId.GOOGLE_MAPS)
    secondary = FakeProvider(ProviderId.HERE)
    resolver, _ = _resolver([primary, secondary])

    route = await resolver.resolve_route(REQUEST)

    assert route.provider == ProviderId.HERE
    assert len(primary.calls) == 1


@pytest.mark.asyncio
async def test_parse_failure_on_last_provider_is_unknown_error():
    resolver, _ = _resolver([ExplodingParseProvider(ProviderId.GOOGLE_MAPS)])

    with pytest.raises(UnknownRoutingError) as exc_info:
        await resolver.resolve_route(REQUEST)

    assert isinstance(exc_info.value.cause, OverflowError)
