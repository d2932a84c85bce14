"""Geospatial helpers for dispatch: great-circle distance, radius filtering,
nearest-first ordering and fallback location resolution.

Points are ``GeoPoint(longitude, latitude)`` in degrees. A location is treated
as missing when it is absent or exactly ``(0, 0)``, which is what clients send
when they have no fix.
"""

import math
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, TypeVar

EARTH_RADIUS_METERS = 6_371_000
DEFAULT_RADIUS_METERS = 2000.0

# Metres spanned by one degree of latitude on the sphere above
_METERS_PER_DEGREE = math.pi * EARTH_RADIUS_METERS / 180

T = TypeVar("T")


@dataclass(frozen=True)
class GeoPoint:
    longitude: float
    latitude: float

    def as_dict(self) -> dict:
        return {"longitude": self.longitude, "latitude": self.latitude}


def make_point(longitude: Optional[float], latitude: Optional[float]) -> Optional[GeoPoint]:
    """Build a point from nullable columns; missing or (0, 0) gives None."""
    if longitude is None or latitude is None:
        return None
    point = GeoPoint(float(longitude), float(latitude))
    if is_missing(point):
        return None
    return point


def is_missing(point: Optional[GeoPoint]) -> bool:
    return point is None or (point.longitude == 0 and point.latitude == 0)


def resolve_location(*candidates: Optional[GeoPoint]) -> Optional[GeoPoint]:
    """Return the first candidate that is not missing."""
    for candidate in candidates:
        if not is_missing(candidate):
            return candidate
    return None


def haversine_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in metres between two points."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    delta_phi = math.radians(b.latitude - a.latitude)
    delta_lambda = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_METERS * c


def format_distance(meters: Optional[float]) -> str:
    if meters is None:
        return "Unknown"
    if meters < 1000:
        return f"{round(meters)} m"
    return f"{meters / 1000:.2f} km"


def distance_info(meters: Optional[float]) -> dict:
    """Distance annotation attached to dispatch candidates."""
    return {"value": meters, "unit": "meters", "text": format_distance(meters)}


def within_radius(
    center: GeoPoint, point: GeoPoint, radius_meters: float = DEFAULT_RADIUS_METERS
) -> bool:
    return haversine_distance(center, point) <= radius_meters


def bounding_box(
    center: GeoPoint, radius_meters: float
) -> tuple[float, float, float, float]:
    """(min_lon, min_lat, max_lon, max_lat) enclosing the radius around center.

    Used as a cheap SQL pre-filter; exact filtering happens with
    ``haversine_distance`` afterwards. Longitude span is widened to the full
    range near the poles where it degenerates, and when the box would cross
    the antimeridian.
    """
    lat_delta = radius_meters / _METERS_PER_DEGREE
    cos_lat = math.cos(math.radians(center.latitude))
    if cos_lat < 1e-6:
        lon_delta = 180.0
    else:
        lon_delta = min(180.0, lat_delta / cos_lat)

    min_lon = center.longitude - lon_delta
    max_lon = center.longitude + lon_delta
    if min_lon < -180.0 or max_lon > 180.0:
        min_lon, max_lon = -180.0, 180.0
    return (
        min_lon,
        max(-90.0, center.latitude - lat_delta),
        max_lon,
        min(90.0, center.latitude + lat_delta),
    )


def sort_nearest(items: Iterable[T], distance_of: Callable[[T], Optional[float]]) -> list[T]:
    """Sort ascending by distance; unknown distances go last."""
    return sorted(
        items,
        key=lambda item: (distance_of(item) is None, distance_of(item) or 0.0),
    )
