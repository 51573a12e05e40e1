"""
Geographic helpers.
"""
import math

from models.parameters import Coordinates

EARTH_RADIUS_METERS = 6371000


def haversine_distance(origin: Coordinates, destination: Coordinates) -> float:
    """Great-circle distance in meters, rounded to 0.1 m."""
    lat1 = math.radians(origin.lat)
    lat2 = math.radians(destination.lat)
    delta_lat = math.radians(destination.lat - origin.lat)
    delta_lng = math.radians(destination.lng - origin.lng)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return round(EARTH_RADIUS_METERS * c, 1)
