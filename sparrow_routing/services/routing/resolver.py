from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from redis.asyncio import Redis

from sparrow_routing.core.config import Settings
from sparrow_routing.core.enums import ProviderId
from sparrow_routing.core.exceptions import NoInternetError, RoutingError, UnknownRoutingError
from sparrow_routing.models.route import Route, RouteRequest
from sparrow_routing.services.connectivity import ConnectivityProbe, StaticConnectivityProbe, is_online, timeout_config_for
from sparrow_routing.services.retry import RetryExecutor, RetryPolicy
from sparrow_routing.services.routing.cache import RouteCache
from sparrow_routing.services.routing.providers import (
    GoogleDirectionsProvider,
    HereRoutingProvider,
    MapboxDirectionsProvider,
    ProviderClient,
)

logger = logging.getLogger(__name__)

_PROVIDER_CLASSES: dict[ProviderId, type[ProviderClient]] = {
    ProviderId.GOOGLE_MAPS: GoogleDirectionsProvider,
    ProviderId.MAPBOX: MapboxDirectionsProvider,
    ProviderId.HERE: HereRoutingProvider,
}


class RouteResolver:
    """Resolves routes over an ordered list of providers.

    Each provider is called through the retry executor. When a provider ends in
    a retryable-class error the next one is tried; non-retryable errors (bad
    credentials, no route between the points) stop the chain immediately
    because another provider would not do better. The error that escapes
    always names the provider that produced it.
    """

    def __init__(
        self,
        providers: Sequence[ProviderClient],
        executor: RetryExecutor,
        probe: ConnectivityProbe,
        policy: RetryPolicy | None = None,
        cache: RouteCache | None = None,
        adaptive_retry: bool = False,
    ) -> None:
        self._providers = tuple(providers)
        self.executor = executor
        self.probe = probe
        self.policy = policy or RetryPolicy()
        self.cache = cache
        self.adaptive_retry = adaptive_retry

    @property
    def provider_ids(self) -> list[ProviderId]:
        return [provider.provider_id for provider in self._providers]

    async def resolve_route(self, request: RouteRequest) -> Route:
        routes = await self._resolve(request, alternatives=False)
        return routes[0]

    async def resolve_route_alternatives(self, request: RouteRequest) -> list[Route]:
        return await self._resolve(request, alternatives=True)

    async def clear_cache(self) -> int:
        if self.cache is None:
            return 0
        return await self.cache.clear()

    async def resolve_route_with_provider(self, request: RouteRequest, provider_id: ProviderId) -> Route:
        provider = next((item for item in self._providers if item.provider_id == provider_id), None)
        if provider is None:
            raise UnknownRoutingError(LookupError(f"Route provider {provider_id.value} is not configured"))
        self._ensure_online()
        try:
            routes = await self._fetch_routes(provider, request, alternatives=False)
        except RoutingError as exc:
            raise exc.with_provider(provider.provider_id)
        return routes[0]

    def _ensure_online(self) -> None:
        if not is_online(self.probe.current_quality()):
            logger.info("Route resolution skipped while offline")
            raise NoInternetError()

    def _current_policy(self) -> RetryPolicy:
        if self.adaptive_retry:
            return RetryPolicy.for_quality(self.probe.current_quality())
        return self.policy

    async def _resolve(self, request: RouteRequest, *, alternatives: bool) -> list[Route]:
        self._ensure_online()
        if not self._providers:
            raise UnknownRoutingError(LookupError("No route providers are configured"))

        if self.cache is not None:
            cached = await self.cache.get(request, alternatives=alternatives)
            if cached:
                logger.debug("Route cache hit", extra={"mode": request.transport_mode.value})
                return cached

        routes = await self._get_routes_with_runtime_fallback(request, alternatives=alternatives)
        if self.cache is not None:
            await self.cache.set(request, routes, alternatives=alternatives)
        return routes

    async def _get_routes_with_runtime_fallback(self, request: RouteRequest, *, alternatives: bool) -> list[Route]:
        last_error: RoutingError | None = None
        for index, provider in enumerate(self._providers):
            try:
                return await self._fetch_routes(provider, request, alternatives=alternatives)
            except RoutingError as exc:
                last_error = exc.with_provider(provider.provider_id)
                has_next = index + 1 < len(self._providers)
                if not last_error.is_retryable:
                    logger.warning(
                        "Route provider failed with a terminal error",
                        extra={
                            "provider": provider.provider_id.value,
                            "mode": request.transport_mode.value,
                            "error_kind": last_error.kind.value,
                            "error": last_error.technical_message,
                        },
                    )
                    raise last_error
                if has_next:
                    logger.warning(
                        "Route provider failed, trying fallback",
                        extra={
                            "provider": provider.provider_id.value,
                            "fallback_provider": self._providers[index + 1].provider_id.value,
                            "mode": request.transport_mode.value,
                            "error_kind": last_error.kind.value,
                            "error": last_error.technical_message,
                        },
                    )
                else:
                    logger.error(
                        "Route provider failed and no fallbacks remain",
                        extra={
                            "provider": provider.provider_id.value,
                            "mode": request.transport_mode.value,
                            "error_kind": last_error.kind.value,
                            "error": last_error.technical_message,
                        },
                    )
        assert last_error is not None
        raise last_error

    async def _fetch_routes(self, provider: ProviderClient, request: RouteRequest, *, alternatives: bool) -> list[Route]:
        async def attempt() -> dict[str, Any]:
            # Timeouts follow the link quality at the moment of each attempt.
            timeout = timeout_config_for(self.probe.current_quality()).as_httpx()
            return await provider.fetch_directions(request, alternatives=alternatives, timeout=timeout)

        payload = await self.executor.execute(attempt, self._current_policy(), label=provider.provider_id.value)

        try:
            routes = provider.parse_routes(payload, request)
        except Exception as exc:
            # Malformed payloads and undecodable geometry leave as UnknownRoutingError.
            raise self.executor.classifier(exc, self.probe.current_quality()) from exc
        if not routes:
            raise UnknownRoutingError(ValueError(f"{provider.provider_id.value} returned no usable route"))
        return routes if alternatives else routes[:1]


def build_providers(settings: Settings) -> list[ProviderClient]:
    providers: list[ProviderClient] = []
    for provider_id in settings.route_provider_order:
        api_key = settings.api_key_for(provider_id)
        if not api_key:
            logger.info("Route provider disabled, no credentials", extra={"provider": provider_id.value})
            continue
        providers.append(_PROVIDER_CLASSES[provider_id](api_key))
    return providers


def build_route_resolver(
    settings: Settings,
    probe: ConnectivityProbe | None = None,
    redis: Redis | None = None,
) -> RouteResolver:
    probe = probe or StaticConnectivityProbe(settings.connection_quality)
    policy = RetryPolicy(
        max_attempts=settings.route_retry_attempts,
        initial_delay_sec=settings.route_retry_initial_delay_sec,
        max_delay_sec=settings.route_retry_max_delay_sec,
        backoff_multiplier=settings.route_retry_backoff_multiplier,
    )
    cache = None
    if redis is not None and settings.routes_cache_enabled:
        cache = RouteCache(redis, ttl_sec=settings.routes_cache_ttl_sec)
    return RouteResolver(
        providers=build_providers(settings),
        executor=RetryExecutor(probe),
        probe=probe,
        policy=policy,
        cache=cache,
        adaptive_retry=settings.route_adaptive_retry,
    )
