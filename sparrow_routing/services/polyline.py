"""Polyline codecs used by the directions providers.

``decode``/``encode`` implement the encoded polyline format shared by Google
and Mapbox (5 decimal places, signed deltas split into 5-bit groups,
``chr(value + 63)`` alphabet, continuation bit ``0x20``).

``decode_flexible`` reads HERE's flexible polyline, which uses the same
varint/zig-zag scheme over a URL-safe base64 alphabet and prefixes the
payload with a version and a precision header.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from sparrow_routing.models.route import Coordinate

PRECISION_FACTOR = 1e5

_CONTINUATION_BIT = 0x20
_CHUNK_MASK = 0x1F

_FLEXIBLE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
_FLEXIBLE_DECODING = {char: index for index, char in enumerate(_FLEXIBLE_ALPHABET)}
_FLEXIBLE_VERSION = 1
# HERE third-dimension codes: 0 means the polyline carries only lat/lng.
_FLEXIBLE_ABSENT = 0


class PolylineDecodeError(ValueError):
    pass


def _zigzag_decode(value: int) -> int:
    return ~(value >> 1) if value & 1 else value >> 1


def _zigzag_encode(value: int) -> int:
    shifted = value << 1
    return ~shifted if value < 0 else shifted


def _polyline_chunks(encoded: str) -> Iterator[int]:
    for position, char in enumerate(encoded):
        chunk = ord(char) - 63
        if not 0 <= chunk <= 0x3F:
            raise PolylineDecodeError(f"Invalid polyline character {char!r} at position {position}")
        yield chunk


def _flexible_chunks(encoded: str) -> Iterator[int]:
    for position, char in enumerate(encoded):
        chunk = _FLEXIBLE_DECODING.get(char)
        if chunk is None:
            raise PolylineDecodeError(f"Invalid flexible polyline character {char!r} at position {position}")
        yield chunk


def _unsigned_values(chunks: Iterable[int]) -> Iterator[int]:
    result = 0
    shift = 0
    for chunk in chunks:
        result |= (chunk & _CHUNK_MASK) << shift
        if chunk & _CONTINUATION_BIT:
            shift += 5
            continue
        yield result
        result = 0
        shift = 0
    if shift:
        raise PolylineDecodeError("Polyline ends in the middle of a value")


def _to_coordinate(lat: int, lng: int, factor: float) -> Coordinate:
    try:
        return Coordinate(latitude=lat / factor, longitude=lng / factor)
    except ValueError as exc:
        raise PolylineDecodeError(f"Decoded point is not a valid coordinate: {exc}") from exc


def decode(encoded: str) -> list[Coordinate]:
    values = [_zigzag_decode(value) for value in _unsigned_values(_polyline_chunks(encoded))]
    if len(values) % 2:
        raise PolylineDecodeError("Polyline has a latitude without a matching longitude")

    coordinates: list[Coordinate] = []
    lat = 0
    lng = 0
    for index in range(0, len(values), 2):
        lat += values[index]
        lng += values[index + 1]
        coordinates.append(_to_coordinate(lat, lng, PRECISION_FACTOR))
    return coordinates


def _encode_unsigned(value: int) -> str:
    chars: list[str] = []
    while value >= _CONTINUATION_BIT:
        chars.append(chr((_CONTINUATION_BIT | (value & _CHUNK_MASK)) + 63))
        value >>= 5
    chars.append(chr(value + 63))
    return "".join(chars)


def encode(coordinates: Iterable[Coordinate]) -> str:
    parts: list[str] = []
    prev_lat = 0
    prev_lng = 0
    for coordinate in coordinates:
        lat = round(coordinate.latitude * PRECISION_FACTOR)
        lng = round(coordinate.longitude * PRECISION_FACTOR)
        parts.append(_encode_unsigned(_zigzag_encode(lat - prev_lat)))
        parts.append(_encode_unsigned(_zigzag_encode(lng - prev_lng)))
        prev_lat = lat
        prev_lng = lng
    return "".join(parts)


def decode_flexible(encoded: str) -> list[Coordinate]:
    """Decode a HERE flexible polyline, dropping any third dimension."""
    values = _unsigned_values(_flexible_chunks(encoded))
    try:
        version = next(values)
        header = next(values)
    except StopIteration:
        raise PolylineDecodeError("Flexible polyline header is incomplete") from None
    if version != _FLEXIBLE_VERSION:
        raise PolylineDecodeError(f"Unsupported flexible polyline version {version}")

    precision = header & 0x0F
    third_dim = (header >> 4) & 0x07
    factor = float(10**precision)
    width = 2 if third_dim == _FLEXIBLE_ABSENT else 3

    deltas = [_zigzag_decode(value) for value in values]
    if len(deltas) % width:
        raise PolylineDecodeError("Flexible polyline ends in the middle of a point")

    coordinates: list[Coordinate] = []
    lat = 0
    lng = 0
    for index in range(0, len(deltas), width):
        lat += deltas[index]
        lng += deltas[index + 1]
        coordinates.append(_to_coordinate(lat, lng, factor))
    return coordinates
