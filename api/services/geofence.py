"""
Geofence matcher — service-area membership for customer and restaurant coordinates.

Polygons are rings of [lng, lat] pairs (GeoJSON order). Two tests are exposed:
  - buffered: inside the polygon or within GEOFENCE_BUFFER_KM of its boundary
    (used to decide whether a customer is served at all)
  - exact: strictly inside the polygon (used to pick restaurants in the same zone)
"""

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from config import settings
from services.errors import OutOfServiceArea
from services.maps import haversine_distance

logger = logging.getLogger(__name__)

DEFAULT_AREAS_FILE = Path(__file__).resolve().parent.parent / "data" / "service_areas.json"


@dataclass(frozen=True)
class ServiceArea:
    name: str
    polygon: tuple[tuple[float, float], ...]  # (lng, lat)

    def contains(self, lat: float, lng: float) -> bool:
        return point_in_polygon(lat, lng, self.polygon)

    def contains_buffered(self, lat: float, lng: float, buffer_km: float) -> bool:
        if self.contains(lat, lng):
            return True
        return distance_to_boundary_km(lat, lng, self.polygon) <= buffer_km


def point_in_polygon(lat: float, lng: float, polygon) -> bool:
    """Ray casting. Points on an edge count as inside."""
    inside = False
    n = len(polygon)
    for i in range(n):
        x1, y1 = polygon[i]
        x2, y2 = polygon[(i + 1) % n]
        if _on_segment(lng, lat, x1, y1, x2, y2):
            return True
        if (y1 > lat) != (y2 > lat):
            x_cross = x1 + (lat - y1) * (x2 - x1) / (y2 - y1)
            if lng < x_cross:
                inside = not inside
    return inside


def _on_segment(px, py, ax, ay, bx, by, eps: float = 1e-12) -> bool:
    cross = (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    if abs(cross) > eps:
        return False
    return min(ax, bx) - eps <= px <= max(ax, bx) + eps and min(ay, by) - eps <= py <= max(ay, by) + eps


def point_to_segment_km(lat: float, lng: float, a: tuple[float, float], b: tuple[float, float]) -> float:
    """Distance from a point to segment AB (both (lng, lat)), projected in degree space."""
    ax, ay = a
    bx, by = b
    dx = bx - ax
    dy = by - ay
    if dx == 0 and dy == 0:
        return haversine_distance(lat, lng, ay, ax)
    t = max(0.0, min(1.0, ((lng - ax) * dx + (lat - ay) * dy) / (dx * dx + dy * dy)))
    return haversine_distance(lat, lng, ay + t * dy, ax + t * dx)


def distance_to_boundary_km(lat: float, lng: float, polygon) -> float:
    n = len(polygon)
    return min(point_to_segment_km(lat, lng, polygon[i], polygon[(i + 1) % n]) for i in range(n))


def _parse_areas(raw) -> tuple[ServiceArea, ...]:
    areas = []
    for entry in raw:
        ring = entry["polygon"]
        # Accept both a bare ring and GeoJSON-style [ring]
        if ring and isinstance(ring[0][0], list):
            ring = ring[0]
        if len(ring) < 3:
            raise ValueError(f"Service area {entry.get('name')!r} needs at least 3 points")
        areas.append(ServiceArea(
            name=entry["name"],
            polygon=tuple((float(p[0]), float(p[1])) for p in ring),
        ))
    return tuple(areas)


@lru_cache(maxsize=1)
def load_service_areas() -> tuple[ServiceArea, ...]:
    path = Path(settings.SERVICE_AREAS_FILE) if settings.SERVICE_AREAS_FILE else DEFAULT_AREAS_FILE
    with path.open(encoding="utf-8") as fh:
        areas = _parse_areas(json.load(fh))
    logger.info("Loaded %d service areas from %s", len(areas), path)
    return areas


def match_buffered(lat: float, lng: float, areas=None, buffer_km: float | None = None) -> ServiceArea:
    """Service area serving this coordinate, or OutOfServiceArea."""
    areas = load_service_areas() if areas is None else areas
    buffer_km = settings.GEOFENCE_BUFFER_KM if buffer_km is None else buffer_km
    for area in areas:
        if area.contains_buffered(lat, lng, buffer_km):
            return area
    raise OutOfServiceArea("Sorry, we don't deliver to your location yet.", latitude=lat, longitude=lng)


def in_exact_area(area: ServiceArea, lat: float | None, lng: float | None) -> bool:
    if lat is None or lng is None:
        return False
    return area.contains(lat, lng)
