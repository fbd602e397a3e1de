from __future__ import annotations

from typing import TYPE_CHECKING

from sparrow_routing.core.enums import RoutingErrorKind

if TYPE_CHECKING:
    from sparrow_routing.core.enums import ProviderId


class AppError(Exception):
    def __init__(self, code: str, message: str, status_code: int = 400, details: dict | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class RoutingError(AppError):
    """Closed taxonomy of failures surfaced by the routing layer.

    Every variant carries a fixed user-facing message, a technical message,
    a retryability flag and an optional suggested action. ``provider`` is
    attached by the resolver for diagnostics once the failing provider is known.
    """

    kind: RoutingErrorKind = RoutingErrorKind.UNKNOWN
    user_message: str = "Something went wrong"
    suggested_action: str | None = None
    http_status: int = 500

    def __init__(self, technical_message: str, *, provider: ProviderId | None = None) -> None:
        self.technical_message = technical_message
        self.provider = provider
        super().__init__(
            code=self.kind.value,
            message=self.user_message,
            status_code=self.http_status,
        )
        self.details = self._build_details()

    @property
    def is_retryable(self) -> bool:
        return True

    def _build_details(self) -> dict:
        return {
            "user_message": self.user_message,
            "technical_message": self.technical_message,
            "retryable": self.is_retryable,
            "suggested_action": self.suggested_action,
            "provider": self.provider.value if self.provider is not None else None,
        }

    def with_provider(self, provider: ProviderId) -> RoutingError:
        if self.provider is None:
            self.provider = provider
            self.details = self._build_details()
        return self

    def __str__(self) -> str:
        prefix = f"[{self.provider.value}] " if self.provider is not None else ""
        return f"{prefix}{self.kind.value}: {self.technical_message}"


class NoInternetError(RoutingError):
    kind = RoutingErrorKind.NO_INTERNET
    user_message = "No internet connection"
    suggested_action = "Check your internet connection and try again"
    http_status = 503

    def __init__(self, *, provider: ProviderId | None = None) -> None:
        super().__init__("Device is not connected to the internet", provider=provider)


class SlowConnectionError(RoutingError):
    kind = RoutingErrorKind.SLOW_CONNECTION
    user_message = "Connection is slow"
    suggested_action = "Check your internet speed and try again"
    http_status = 504

    def __init__(self, *, provider: ProviderId | None = None) -> None:
        super().__init__("Request timed out due to slow network", provider=provider)


class ServerTimeoutError(RoutingError):
    kind = RoutingErrorKind.SERVER_TIMEOUT
    user_message = "Server is taking too long to respond"
    suggested_action = "Please try again in a moment"
    http_status = 504

    def __init__(self, *, provider: ProviderId | None = None) -> None:
        super().__init__("Server response timeout", provider=provider)


class ApiKeyInvalidError(RoutingError):
    kind = RoutingErrorKind.API_KEY_INVALID
    user_message = "Service temporarily unavailable"
    suggested_action = "Please contact support if this persists"
    http_status = 502

    def __init__(self, *, provider: ProviderId | None = None) -> None:
        super().__init__("Invalid API key or quota exceeded", provider=provider)

    @property
    def is_retryable(self) -> bool:
        return False


class RateLimitExceededError(RoutingError):
    kind = RoutingErrorKind.RATE_LIMIT_EXCEEDED
    user_message = "Too many requests, please wait"
    suggested_action = "Wait a moment before trying again"
    http_status = 429

    def __init__(self, *, provider: ProviderId | None = None) -> None:
        super().__init__("API rate limit exceeded", provider=provider)


class LocationNotFoundError(RoutingError):
    kind = RoutingErrorKind.LOCATION_NOT_FOUND
    user_message = "Location not found"
    suggested_action = "Please check your pickup and drop-off locations"
    http_status = 404

    def __init__(self, *, provider: ProviderId | None = None) -> None:
        super().__init__("Unable to find route for given coordinates", provider=provider)

    @property
    def is_retryable(self) -> bool:
        return False


class ServerError(RoutingError):
    kind = RoutingErrorKind.SERVER_ERROR
    user_message = "Service temporarily unavailable"
    suggested_action = "Please try again in a few minutes"
    http_status = 502

    def __init__(self, code: int, *, provider: ProviderId | None = None) -> None:
        self.upstream_status = code
        super().__init__(f"Server error: HTTP {code}", provider=provider)

    @property
    def is_retryable(self) -> bool:
        return 500 <= self.upstream_status <= 599


class UnknownRoutingError(RoutingError):
    kind = RoutingErrorKind.UNKNOWN
    user_message = "Something went wrong"
    suggested_action = "Please try again"
    http_status = 500

    def __init__(self, cause: BaseException, *, provider: ProviderId | None = None) -> None:
        self.cause = cause
        super().__init__(f"Unexpected error: {cause}", provider=provider)
