"""Great-circle distance between two points on Earth."""
import math
from dataclasses import dataclass

from app.core.exceptions import InvalidCoordinate

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float


def is_valid_coordinate(lat, lon) -> bool:
    if lat is None or lon is None:
        return False
    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def validate_coordinate(point: Coordinate) -> Coordinate:
    if not is_valid_coordinate(point.lat, point.lon):
        raise InvalidCoordinate(point.lat, point.lon)
    return point


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in kilometres, at full precision.

    Round with :func:`display_km` for presentation only; pricing uses the
    unrounded value.
    """
    validate_coordinate(a)
    validate_coordinate(b)

    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.lon - a.lon)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def display_km(distance: float) -> float:
    return round(distance, 2)
