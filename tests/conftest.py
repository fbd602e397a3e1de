from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from sparrow_routing.api import deps
from sparrow_routing.core.enums import ConnectionQuality
from sparrow_routing.main import app
from sparrow_routing.services.connectivity import StaticConnectivityProbe
from sparrow_routing.services.retry import RetryExecutor, RetryPolicy
from sparrow_routing.services.routing import GoogleDirectionsProvider, MapboxDirectionsProvider, RouteResolver


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture()
def make_resolver() -> Callable[..., RouteResolver]:
    """Builds a resolver over Google and Mapbox adapters backed by mock transports."""

    def factory(
        google_handler: Callable[[httpx.Request], httpx.Response],
        mapbox_handler: Callable[[httpx.Request], httpx.Response],
        quality: ConnectionQuality = ConnectionQuality.WIFI,
    ) -> RouteResolver:
        probe = StaticConnectivityProbe(quality)
        providers = [
            GoogleDirectionsProvider("google-key", transport=httpx.MockTransport(google_handler)),
            MapboxDirectionsProvider("mapbox-token", transport=httpx.MockTransport(mapbox_handler)),
        ]
        return RouteResolver(
            providers,
            RetryExecutor(probe, sleep=_no_sleep),
            probe,
            policy=RetryPolicy(max_attempts=2, initial_delay_sec=0.0),
        )

    return factory


@pytest.fixture()
async def app_client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture()
def use_resolver():
    def install(resolver: RouteResolver) -> None:
        app.dependency_overrides[deps.get_route_resolver] = lambda: resolver

    return install
