"""Restaurant app endpoints — serving status, incoming orders and kitchen progress."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.enums import OrderStatus
from schemas import (
    AcceptOrderRequest, KitchenStatusUpdate, RejectRequest, CancelRequest,
    LiveOrderResponse, PastOrderResponse, ServingUpdate, ScheduleUpdate, RestaurantStatusResponse,
)
from services import order_machine, serving

router = APIRouter()


@router.put("/{restaurant_id}/serving", response_model=RestaurantStatusResponse)
async def set_serving(restaurant_id: uuid.UUID, data: ServingUpdate, db: AsyncSession = Depends(get_db)):
    return await serving.set_serving(db, restaurant_id, data.is_serving)


@router.put("/{restaurant_id}/schedule", response_model=RestaurantStatusResponse)
async def update_schedule(restaurant_id: uuid.UUID, data: ScheduleUpdate, db: AsyncSession = Depends(get_db)):
    """Weekly open/close times, applied by the auto-schedule loop while enabled."""
    schedule = None
    if data.weekly_schedule is not None:
        schedule = {day: slot.model_dump() for day, slot in data.weekly_schedule.items()}
    return await serving.update_schedule(db, restaurant_id, data.enabled, schedule)


@router.get("/{restaurant_id}/orders/pending", response_model=list[LiveOrderResponse])
async def pending_orders(restaurant_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await order_machine.orders_for_restaurant(db, restaurant_id, (OrderStatus.PENDING,))


@router.get("/{restaurant_id}/orders/active", response_model=list[LiveOrderResponse])
async def active_orders(restaurant_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await order_machine.orders_for_restaurant(
        db, restaurant_id, (OrderStatus.PREPARING, OrderStatus.ACCEPTED),
    )


@router.post("/{restaurant_id}/orders/{order_id}/accept", response_model=LiveOrderResponse)
async def accept_order(
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    data: AcceptOrderRequest,
    db: AsyncSession = Depends(get_db),
):
    return await order_machine.accept_order(db, restaurant_id, order_id, data.preparation_time)


@router.patch("/{restaurant_id}/orders/{order_id}/kitchen", response_model=LiveOrderResponse)
async def update_kitchen_status(
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    data: KitchenStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    if data.status == "READY":
        return await order_machine.mark_ready(db, restaurant_id, order_id)
    return await order_machine.mark_almost_ready(db, restaurant_id, order_id)


@router.post("/{restaurant_id}/orders/{order_id}/reject", response_model=PastOrderResponse)
async def reject_order(
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    data: RejectRequest,
    db: AsyncSession = Depends(get_db),
):
    return await order_machine.reject_order(db, restaurant_id, order_id, data.reason)


@router.post("/{restaurant_id}/orders/{order_id}/cancel", response_model=PastOrderResponse)
async def cancel_order(
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    data: CancelRequest,
    db: AsyncSession = Depends(get_db),
):
    return await order_machine.cancel_order(db, restaurant_id, order_id, data.reason)
