"""Great-circle distance and coordinate parsing."""
import math
from typing import Any, List, Optional, Tuple

EARTH_RADIUS_KM = 6371.0
DEFAULT_RADIUS_KM = 100.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in kilometres between two points."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def to_float(value: Any) -> Optional[float]:
    """Finite float or None."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def valid_lat_lng(lat: Optional[float], lng: Optional[float]) -> bool:
    return lat is not None and lng is not None and -90 <= lat <= 90 and -180 <= lng <= 180


def parse_lat_lng(lat: Any, lng: Any) -> Optional[Tuple[float, float]]:
    """(lat, lng) when both are finite and in range, else None."""
    lat_f, lng_f = to_float(lat), to_float(lng)
    if not valid_lat_lng(lat_f, lng_f):
        return None
    return lat_f, lng_f


def longitude_ranges(lng: float, d_lng: float) -> List[Tuple[float, float]]:
    """
    Longitude intervals covering ``lng +- d_lng``.

    A span crossing the antimeridian is split in two, one interval on
    each side of +-180.
    """
    if d_lng >= 180:
        return [(-180.0, 180.0)]
    low, high = lng - d_lng, lng + d_lng
    if low < -180:
        return [(low + 360, 180.0), (-180.0, high)]
    if high > 180:
        return [(low, 180.0), (-180.0, high - 360)]
    return [(low, high)]


def bounding_box(lat: float, lng: float, radius_km: float) -> Tuple[float, float, List[Tuple[float, float]]]:
    """
    (min_lat, max_lat, lng_ranges) enclosing the radius; used to prefilter in SQL.

    Latitudes are clamped to the poles. A circle reaching a pole covers
    every longitude.
    """
    d_lat = math.degrees(radius_km / EARTH_RADIUS_KM)
    min_lat, max_lat = max(-90.0, lat - d_lat), min(90.0, lat + d_lat)
    if min_lat <= -90 or max_lat >= 90:
        return min_lat, max_lat, [(-180.0, 180.0)]
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    d_lng = math.degrees(radius_km / EARTH_RADIUS_KM / cos_lat)
    return min_lat, max_lat, longitude_ranges(lng, d_lng)
