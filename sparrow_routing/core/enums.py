from enum import Enum


class TransportMode(str, Enum):
    CAR = "car"
    BICYCLE = "bicycle"
    WALKING = "walking"
    MOTORCYCLE = "motorcycle"


class ProviderId(str, Enum):
    GOOGLE_MAPS = "google"
    MAPBOX = "mapbox"
    HERE = "here"


class ConnectionQuality(str, Enum):
    NONE = "none"
    POOR = "poor"
    CELLULAR_POOR = "cellular_poor"
    CELLULAR_GOOD = "cellular_good"
    WIFI = "wifi"


class RoutingErrorKind(str, Enum):
    NO_INTERNET = "no_internet"
    SLOW_CONNECTION = "slow_connection"
    SERVER_TIMEOUT = "server_timeout"
    API_KEY_INVALID = "api_key_invalid"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    LOCATION_NOT_FOUND = "location_not_found"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"
