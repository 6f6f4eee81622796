"""Restaurant discovery for customers: who delivers here, how far, how long."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.customer import Customer
from models.restaurant import Restaurant, Listing
from services.errors import NotFound, OutOfServiceArea
from services.geofence import match_buffered, in_exact_area
from services.maps import haversine_distance, delivery_eta

logger = logging.getLogger(__name__)


def _locate(customer: Customer, lat: float | None, lng: float | None):
    """Buffered area match for the given coords, falling back to the default address."""
    if lat is not None and lng is not None:
        try:
            return match_buffered(lat, lng), (lat, lng)
        except OutOfServiceArea:
            logger.debug("Coords %.5f,%.5f outside service areas; trying default address", lat, lng)

    default = customer.default_address()
    if default and default.get("latitude") is not None and default.get("longitude") is not None:
        d_lat, d_lng = float(default["latitude"]), float(default["longitude"])
        return match_buffered(d_lat, d_lng), (d_lat, d_lng)

    raise OutOfServiceArea("You're outside our service area")


async def discover_restaurants(
    session: AsyncSession,
    customer_id: uuid.UUID,
    latitude: float | None = None,
    longitude: float | None = None,
) -> list[dict]:
    customer = await session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found", customer_id=str(customer_id))

    area, (lat, lng) = _locate(customer, latitude, longitude)

    rows = await session.execute(select(Restaurant).order_by(Restaurant.name))
    results = []
    for restaurant in rows.scalars().all():
        if not in_exact_area(area, restaurant.latitude, restaurant.longitude):
            continue
        distance = haversine_distance(lat, lng, restaurant.latitude, restaurant.longitude)
        results.append({
            "id": str(restaurant.id),
            "name": restaurant.name,
            "address": restaurant.address,
            "is_serving": restaurant.is_serving,
            "is_cod_available": restaurant.is_cod_available,
            "free_delivery_mov": restaurant.free_delivery_mov,
            "distance_km": round(distance, 2),
            "delivery_time_min": delivery_eta(distance),
        })
    results.sort(key=lambda r: r["distance_km"])
    return results


async def restaurant_menu(session: AsyncSession, restaurant_id: uuid.UUID, category: str | None = None) -> list[Listing]:
    if await session.get(Restaurant, restaurant_id) is None:
        raise NotFound("Restaurant not found", restaurant_id=str(restaurant_id))
    query = select(Listing).where(Listing.restaurant_id == restaurant_id, Listing.in_stock.is_(True))
    if category:
        query = query.where(Listing.category == category)
    return list((await session.execute(query.order_by(Listing.name))).scalars().all())
