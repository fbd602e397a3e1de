from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from sparrow_routing.core.enums import ProviderId
from sparrow_routing.models.route import Coordinate, Route, RouteInstruction, RouteRequest, RouteSummary

logger = logging.getLogger(__name__)

BUCKET_SEC = 300
KEY_PREFIX = "route:"


def _serialize_route(route: Route) -> dict[str, Any]:
    return {
        "coordinates": [[point.latitude, point.longitude] for point in route.coordinates],
        "encoded_polyline": route.encoded_polyline,
        "distance_meters": route.distance_meters,
        "duration_seconds": route.duration_seconds,
        "provider": route.provider.value,
        "summary": {
            "start_address": route.summary.start_address,
            "end_address": route.summary.end_address,
            "traffic_enabled": route.summary.traffic_enabled,
            "instructions": [
                [item.text, item.distance_meters, item.duration_seconds] for item in route.summary.instructions
            ],
        },
    }


def _deserialize_route(payload: dict[str, Any]) -> Route:
    summary = payload.get("summary") or {}
    return Route(
        coordinates=tuple(Coordinate(lat, lon) for lat, lon in payload["coordinates"]),
        encoded_polyline=payload["encoded_polyline"],
        distance_meters=float(payload["distance_meters"]),
        duration_seconds=int(payload["duration_seconds"]),
        provider=ProviderId(payload["provider"]),
        summary=RouteSummary(
            start_address=summary.get("start_address"),
            end_address=summary.get("end_address"),
            traffic_enabled=bool(summary.get("traffic_enabled", False)),
            instructions=tuple(
                RouteInstruction(text=text, distance_meters=float(distance), duration_seconds=int(duration))
                for text, distance, duration in summary.get("instructions", [])
            ),
        ),
    )


class RouteCache:
    """Short-lived Redis cache of resolved routes.

    Keys include a five minute time bucket so traffic-dependent results age out
    even when the TTL is configured longer. Redis being unavailable never fails
    a resolution: errors are logged and the lookup behaves as a miss.
    """

    def __init__(self, redis: Redis, ttl_sec: int = 300) -> None:
        self.redis = redis
        self.ttl_sec = ttl_sec

    @staticmethod
    def cache_key(request: RouteRequest, *, alternatives: bool, now: datetime | None = None) -> str:
        now = now or datetime.now(timezone.utc)
        bucket = int(now.timestamp() // BUCKET_SEC)
        points = ";".join(f"{point.latitude:.5f},{point.longitude:.5f}" for point in request.points)
        flags = f"{int(request.avoid_tolls)}{int(request.use_traffic)}{int(alternatives)}"
        return f"{KEY_PREFIX}{request.transport_mode.value}:{flags}:{points}:{bucket}"

    async def get(self, request: RouteRequest, *, alternatives: bool) -> list[Route] | None:
        key = self.cache_key(request, alternatives=alternatives)
        try:
            cached = await self.redis.get(key)
        except RedisError as exc:
            logger.warning("Route cache read failed", extra={"key": key, "error": str(exc)})
            return None
        if not cached:
            return None

        try:
            payload = json.loads(cached)
            return [_deserialize_route(item) for item in payload]
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding unreadable cached route", extra={"key": key, "error": str(exc)})
            return None

    async def set(self, request: RouteRequest, routes: list[Route], *, alternatives: bool) -> None:
        if not routes:
            return
        key = self.cache_key(request, alternatives=alternatives)
        payload = json.dumps([_serialize_route(route) for route in routes])
        try:
            await self.redis.setex(key, self.ttl_sec, payload)
        except RedisError as exc:
            logger.warning("Route cache write failed", extra={"key": key, "error": str(exc)})

    async def clear(self) -> int:
        """Drop every cached route and return how many keys were removed."""
        removed = 0
        try:
            async for key in self.redis.scan_iter(match=f"{KEY_PREFIX}*"):
                removed += await self.redis.delete(key)
        except RedisError as exc:
            logger.warning("Route cache clear failed", extra={"removed": removed, "error": str(exc)})
        else:
            logger.info("Route cache cleared", extra={"removed": removed})
        return removed
