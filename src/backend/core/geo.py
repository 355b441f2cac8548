"""
Great-circle distance helpers.

Inputs are assumed to be valid coordinates in degrees; callers validate.
"""

import math

EARTH_RADIUS_METERS = 6_371_000

# Rough length of one degree of latitude, used only for the coarse prefilter
METERS_PER_DEGREE_LAT = 111_000


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two points, in meters."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def is_within_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    max_distance_meters: float,
) -> bool:
    """Check whether two points are at most ``max_distance_meters`` apart."""
    return calculate_distance(lat1, lon1, lat2, lon2) <= max_distance_meters


def bounding_box(latitude: float, longitude: float, distance_meters: float) -> tuple[float, float, float, float]:
    """
    Coarse box around a point, as (min_lat, max_lat, min_lon, max_lon).

    The longitude delta is widened by 1/cos(latitude) to account for meridians
    converging. This blows up close to the poles (cos -> 0); there is no polar
    usage for incident reports, so it is left as a known limitation.
    """
    lat_delta = distance_meters / METERS_PER_DEGREE_LAT
    lon_delta = lat_delta / math.cos(math.radians(latitude))

    return (
        latitude - lat_delta,
        latitude + lat_delta,
        longitude - lon_delta,
        longitude + lon_delta,
    )
