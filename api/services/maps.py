"""
Distance and travel-time estimates.

Straight-line (haversine) only; values are for display and sorting, never routing.
"""

import math

from config import settings


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km."""
    R = 6371  # Earth radius in km
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def estimate_duration(distance_km: float, avg_speed_kmh: float | None = None) -> int:
    """Travel time in minutes at average city speed."""
    speed = avg_speed_kmh or settings.AVG_SPEED_KMH
    return max(round(distance_km / speed * 60), 1)


def delivery_eta(distance_km: float, avg_speed_kmh: float | None = None) -> int:
    """Customer-facing ETA: travel time plus 10 minutes handling, never under 10."""
    speed = avg_speed_kmh or settings.AVG_SPEED_KMH
    return max(10, round(distance_km / speed * 60 + 10))
