"""Tests for service-area matching and distance/ETA estimates."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import pytest

from services.errors import OutOfServiceArea
from services.geofence import (
    ServiceArea, point_in_polygon, match_buffered, in_exact_area, load_service_areas,
)
from services.maps import haversine_distance, estimate_duration, delivery_eta

SQUARE = ((72.0, 22.0), (72.1, 22.0), (72.1, 22.1), (72.0, 22.1), (72.0, 22.0))
AREA = ServiceArea(name="Square", polygon=SQUARE)


def test_point_inside_and_outside():
    """Ray casting tells inside from outside."""
    assert point_in_polygon(22.05, 72.05, SQUARE)
    assert not point_in_polygon(22.2, 72.05, SQUARE)


def test_point_on_edge_counts_as_inside():
    """Points on the polygon edge are inside."""
    assert point_in_polygon(22.0, 72.05, SQUARE)


def test_buffer_admits_points_just_outside():
    """The buffer admits points a few hundred metres outside."""
    # ~0.22 km north of the top edge
    lat = 22.1 + 0.002
    assert not AREA.contains(lat, 72.05)
    assert match_buffered(lat, 72.05, areas=(AREA,), buffer_km=0.3) == AREA


def test_outside_buffer_is_rejected():
    """Points beyond the buffer are out of service area."""
    with pytest.raises(OutOfServiceArea):
        match_buffered(22.2, 72.05, areas=(AREA,), buffer_km=0.3)


def test_exact_area_requires_coordinates():
    """A restaurant without coordinates is never inside an area."""
    assert in_exact_area(AREA, 22.05, 72.05)
    assert not in_exact_area(AREA, None, 72.05)


def test_bundled_areas_load():
    """The bundled service areas load and are non-empty."""
    names = {a.name for a in load_service_areas()}
    assert "Vallabh Vidyanagar" in names


def test_haversine_known_distance():
    """Haversine matches a known city distance."""
    # One degree of latitude is ~111.2 km
    assert haversine_distance(22.0, 72.0, 23.0, 72.0) == pytest.approx(111.19, rel=1e-3)


def test_duration_and_eta_floors():
    """Travel time is at least a minute and ETA at least ten."""
    assert estimate_duration(0.0) == 1
    assert estimate_duration(12.5, avg_speed_kmh=25) == 30
    assert delivery_eta(0.0) == 10
    assert delivery_eta(5.0, avg_speed_kmh=25) == 22
