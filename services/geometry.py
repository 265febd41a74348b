"""
Great-circle distance and compass bearing between two coordinates.
"""
import math
from typing import Any, Union

from models import Coordinate, Direction

EARTH_RADIUS_KM = 6371.0

# Clockwise from north, one per 45 degrees
OCTANTS = (
    Direction.N,
    Direction.NE,
    Direction.E,
    Direction.SE,
    Direction.S,
    Direction.SW,
    Direction.W,
    Direction.NW,
)

CoordinateLike = Union[Coordinate, tuple, dict]


def as_coordinate(value: Any) -> Coordinate:
    """
    Coerce a Coordinate, (lat, lon) tuple or dict into a validated Coordinate.

    Raises:
        pydantic.ValidationError: latitude/longitude out of range
    """
    if isinstance(value, Coordinate):
        # Re-validate: model_construct() and friends can bypass the range checks
        return Coordinate.model_validate(value.model_dump())
    if isinstance(value, (tuple, list)):
        lat, lon = value
        return Coordinate(latitude=lat, longitude=lon)
    return Coordinate.model_validate(value)


def distance_km(a: CoordinateLike, b: CoordinateLike) -> float:
    """Haversine distance in kilometers."""
    a = as_coordinate(a)
    b = as_coordinate(b)

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    delta_lat = math.radians(b.latitude - a.latitude)
    delta_lon = math.radians(b.longitude - a.longitude)

    h = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) *
         math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c


def initial_bearing(a: CoordinateLike, b: CoordinateLike) -> float:
    """Initial bearing from a to b in degrees, normalized to [0, 360)."""
    a = as_coordinate(a)
    b = as_coordinate(b)

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    delta_lon = math.radians(b.longitude - a.longitude)

    x = math.sin(delta_lon) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(delta_lon)

    return (math.degrees(math.atan2(x, y)) + 360.0) % 360.0


def bearing_octant(a: CoordinateLike, b: CoordinateLike) -> Direction:
    """
    Nearest 45-degree compass octant of the bearing from a to b.

    Bearings exactly between two octants (22.5, 67.5, ...) resolve with
    round-half-to-even on the octant index, so ties land on N, E, S or W.
    Identical points have no bearing and report N.
    """
    index = round(initial_bearing(a, b) / 45.0) % len(OCTANTS)
    return OCTANTS[index]
