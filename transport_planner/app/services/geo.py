"""
Geographic helpers for route repositioning.
"""

import math
from typing import Optional


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    R = 6371.0

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2) - math.radians(lon1)

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return R * c


def repositioning_distance(from_route, to_route) -> Optional[float]:
    """
    Distance from the end of ``from_route`` to the start of ``to_route``.

    Returns None when either point lacks coordinates.
    """
    points = (
        from_route.destination_lat, from_route.destination_lng,
        to_route.origin_lat, to_route.origin_lng,
    )
    if any(p is None for p in points):
        return None
    return round(haversine_distance(*points), 2)


def travel_time_minutes(distance_km: float, average_speed_kmh: float, traffic_factor: float = 1.0) -> int:
    """Driving time at average speed, stretched by the traffic factor."""
    return int(round(distance_km / average_speed_kmh * 60 * traffic_factor))
