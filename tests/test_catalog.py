"""Tests for restaurant discovery and menus."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

from decimal import Decimal

import pytest

from conftest import call
from models.customer import Customer
from models.restaurant import Restaurant, Listing
from services.catalog import discover_restaurants, restaurant_menu
from services.errors import NotFound, OutOfServiceArea


async def _add_restaurant(factory, name, lat, lng):
    async with factory() as s:
        restaurant = Restaurant(
            name=name, owner_name="Owner", phone="9000000099", latitude=lat, longitude=lng,
            is_serving=True, free_delivery_mov=Decimal("300"),
        )
        s.add(restaurant)
        await s.commit()
        return restaurant.id


async def test_discovery_lists_restaurants_in_area_by_distance(session_factory, world):
    """Restaurants in the customer's area are listed nearest first."""
    near = await _add_restaurant(session_factory, "Corner Cafe", 22.5552, 72.9302)
    await _add_restaurant(session_factory, "Far Away Dhaba", 23.03, 72.58)

    results = await call(session_factory, discover_restaurants, world["customer_id"], 22.555, 72.93)

    assert [r["id"] for r in results] == [str(near), str(world["restaurant_id"])]
    assert results[0]["distance_km"] < results[1]["distance_km"]
    assert results[0]["delivery_time_min"] >= 10


async def test_discovery_falls_back_to_default_address(session_factory, world):
    """Without coordinates the customer's default address is used."""
    results = await call(session_factory, discover_restaurants, world["customer_id"], 23.03, 72.58)
    assert [r["name"] for r in results] == ["Spice Hub"]


async def test_discovery_outside_area_without_default(session_factory, world):
    """No coordinates and no saved address means out of service area."""
    async with session_factory() as s:
        (await s.get(Customer, world["customer_id"])).addresses = []
        await s.commit()
    with pytest.raises(OutOfServiceArea):
        await call(session_factory, discover_restaurants, world["customer_id"], 23.03, 72.58)


async def test_menu_hides_out_of_stock_and_filters_category(session_factory, world):
    """The menu shows in-stock items and can be filtered by category."""
    async with session_factory() as s:
        s.add_all([
            Listing(restaurant_id=world["restaurant_id"], name="Dal Makhani", original_price=Decimal("160"),
                    discounted_price=Decimal("150"), in_stock=True, category="Mains"),
            Listing(restaurant_id=world["restaurant_id"], name="Gulab Jamun", original_price=Decimal("60"),
                    discounted_price=Decimal("50"), in_stock=False, category="Desserts"),
        ])
        await s.commit()

    menu = await call(session_factory, restaurant_menu, world["restaurant_id"])
    assert [l.name for l in menu] == ["Dal Makhani", "Paneer Tikka"]
    starters = await call(session_factory, restaurant_menu, world["restaurant_id"], "Starters")
    assert [l.name for l in starters] == ["Paneer Tikka"]


async def test_menu_for_unknown_restaurant(session_factory, world):
    """Asking for an unknown restaurant's menu is a NotFound."""
    with pytest.raises(NotFound):
        await call(session_factory, restaurant_menu, world["customer_id"])
