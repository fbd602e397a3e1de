"""Maps transport and HTTP failures onto the routing error taxonomy.

Rules are evaluated in priority order and the first match wins. Network
reachability comes from the connection quality sampled by the caller, so the
classifier itself stays a pure function.
"""

from __future__ import annotations

import asyncio
import errno
import socket
import ssl
from collections.abc import Iterator

import httpx

from sparrow_routing.core.enums import ConnectionQuality
from sparrow_routing.core.exceptions import (
    ApiKeyInvalidError,
    LocationNotFoundError,
    NoInternetError,
    RateLimitExceededError,
    RoutingError,
    ServerError,
    ServerTimeoutError,
    SlowConnectionError,
    UnknownRoutingError,
)
from sparrow_routing.services.connectivity import is_online

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)
_REFUSED_MARKERS = ("connection refused", "network is unreachable", "no route to host")
_REFUSED_ERRNOS = {errno.ECONNREFUSED, errno.ENETUNREACH, errno.EHOSTUNREACH}


class ProviderResponseError(Exception):
    """A provider answered with a failure status inside an otherwise valid response.

    ``status_code`` is the HTTP-equivalent status so that body-level statuses
    such as ``OVER_QUERY_LIMIT`` classify exactly like a real 429.
    """

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def _cause_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _has_marker(exc: BaseException, markers: tuple[str, ...]) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in markers)


def _is_dns_failure(exc: BaseException) -> bool:
    for item in _cause_chain(exc):
        if isinstance(item, socket.gaierror):
            return True
        if isinstance(item, httpx.ConnectError) and _has_marker(item, _DNS_MARKERS):
            return True
    return False


def _is_connection_refused(exc: BaseException) -> bool:
    for item in _cause_chain(exc):
        if isinstance(item, ConnectionRefusedError):
            return True
        if isinstance(item, OSError) and item.errno in _REFUSED_ERRNOS:
            return True
        if isinstance(item, httpx.ConnectError) and _has_marker(item, _REFUSED_MARKERS):
            return True
    return False


def _is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, (httpx.TimeoutException, TimeoutError, asyncio.TimeoutError))


def _is_tls_failure(exc: BaseException) -> bool:
    return any(isinstance(item, ssl.SSLError) for item in _cause_chain(exc))


def _http_status(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    if isinstance(exc, ProviderResponseError):
        return exc.status_code
    return None


def _from_status(status: int) -> RoutingError:
    if status == 400:
        return LocationNotFoundError()
    if status in (401, 403):
        return ApiKeyInvalidError()
    if status == 429:
        return RateLimitExceededError()
    return ServerError(status)


def classify_error(failure: BaseException, quality: ConnectionQuality) -> RoutingError:
    if isinstance(failure, RoutingError):
        return failure

    online = is_online(quality)

    if _is_dns_failure(failure):
        return ServerError(0) if online else NoInternetError()

    if _is_connection_refused(failure):
        return NoInternetError()

    if _is_timeout(failure):
        if quality == ConnectionQuality.NONE:
            return NoInternetError()
        if quality in (ConnectionQuality.POOR, ConnectionQuality.CELLULAR_POOR):
            return SlowConnectionError()
        return ServerTimeoutError()

    if _is_tls_failure(failure):
        return ServerError(0)

    status = _http_status(failure)
    if status is not None:
        return _from_status(status)

    if isinstance(failure, (httpx.TransportError, OSError)):
        return SlowConnectionError() if online else NoInternetError()

    return UnknownRoutingError(failure)
