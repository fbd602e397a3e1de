from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from sparrow_routing.core.enums import ConnectionQuality


@runtime_checkable
class ConnectivityProbe(Protocol):
    def current_quality(self) -> ConnectionQuality: ...


class StaticConnectivityProbe:
    """Reports a fixed quality; servers with a stable uplink use this."""

    def __init__(self, quality: ConnectionQuality = ConnectionQuality.WIFI) -> None:
        self.quality = quality

    def current_quality(self) -> ConnectionQuality:
        return self.quality


def is_online(quality: ConnectionQuality) -> bool:
    return quality != ConnectionQuality.NONE


@dataclass(frozen=True, slots=True)
class TimeoutConfig:
    connect_sec: float
    read_sec: float
    write_sec: float

    def as_httpx(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_sec,
            read=self.read_sec,
            write=self.write_sec,
            pool=self.connect_sec,
        )


_TIMEOUTS = {
    ConnectionQuality.WIFI: TimeoutConfig(connect_sec=10.0, read_sec=30.0, write_sec=15.0),
    ConnectionQuality.CELLULAR_GOOD: TimeoutConfig(connect_sec=15.0, read_sec=45.0, write_sec=20.0),
    ConnectionQuality.CELLULAR_POOR: TimeoutConfig(connect_sec=20.0, read_sec=60.0, write_sec=30.0),
    ConnectionQuality.POOR: TimeoutConfig(connect_sec=20.0, read_sec=60.0, write_sec=30.0),
    ConnectionQuality.NONE: TimeoutConfig(connect_sec=5.0, read_sec=5.0, write_sec=5.0),
}


def timeout_config_for(quality: ConnectionQuality) -> TimeoutConfig:
    return _TIMEOUTS[quality]
