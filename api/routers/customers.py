"""Customer-facing endpoints — discovery, menus, live and past orders."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from routers.common import get_config_snapshot
from schemas import DiscoverRequest, ListingResponse, CancelRequest, PastOrderResponse
from services import catalog, order_machine
from services.app_config import ConfigSnapshot

router = APIRouter()


@router.post("/{customer_id}/discover")
async def discover(customer_id: uuid.UUID, data: DiscoverRequest, db: AsyncSession = Depends(get_db)):
    """Restaurants delivering to the given coords (or the default address)."""
    return await catalog.discover_restaurants(db, customer_id, data.latitude, data.longitude)


@router.get("/restaurants/{restaurant_id}/menu", response_model=list[ListingResponse])
async def menu(restaurant_id: uuid.UUID, category: str | None = None, db: AsyncSession = Depends(get_db)):
    return await catalog.restaurant_menu(db, restaurant_id, category)


# ── Orders ─────────────────────────────────────────────────

@router.get("/{customer_id}/orders/live")
async def live_orders(customer_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await order_machine.live_orders_for_customer(db, customer_id)


@router.get("/{customer_id}/orders/live/{order_id}")
async def live_order(customer_id: uuid.UUID, order_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await order_machine.live_order_view(db, order_id, customer_id=customer_id)


@router.get("/{customer_id}/orders/past")
async def past_orders(customer_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await order_machine.past_orders_for_customer(db, customer_id)


@router.post("/{customer_id}/orders/live/{order_id}/cancel", response_model=PastOrderResponse)
async def cancel_order(
    customer_id: uuid.UUID,
    order_id: uuid.UUID,
    data: CancelRequest,
    db: AsyncSession = Depends(get_db),
):
    """Cancel from any non-terminal state; an assigned rider is released."""
    return await order_machine.cancel_live_order(db, customer_id, order_id, data.reason)


@router.get("/orders/live/{order_id}/support")
async def order_support(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    config: ConfigSnapshot = Depends(get_config_snapshot),
):
    return await order_machine.order_support_contact(db, order_id, config.support_contact)
