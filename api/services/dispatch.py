"""
Rider dispatch and cash-exposure blocking.

A rider carrying too much uncollected COD cash is blocked from duty and from
new orders until an admin settles the cash. What a rider is "doing right now"
is never stored: it is projected from the live order they serve.
"""

import logging
import uuid
from decimal import Decimal

from sqlalchemy import select, update, func, exists, and_
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.customer import Customer
from models.enums import (
    OrderStatus, RestaurantStatus, PaymentMode, PaymentStatus, PastOrderStatus,
    RiderActivity, EventType,
)
from models.order import LiveOrder, PastOrder
from models.payment import PaymentLog
from models.restaurant import Restaurant
from models.rider import Rider, RiderMetaData
from services.clock import utcnow
from services.errors import NotFound, Conflict, BusinessRuleViolation, RiderBlocked, ValidationFailed
from services.maps import haversine_distance, estimate_duration
from services.outbox import record_event

logger = logging.getLogger(__name__)

BIDDABLE_KITCHEN_STATES = (RestaurantStatus.ALMOST_READY, RestaurantStatus.READY)
HELD_ORDER_STATES = (OrderStatus.ACCEPTED, OrderStatus.PICKEDUP, OrderStatus.DROP)


def should_block(unsettled_total, deposit_amount, ratio: float | None = None) -> bool:
    """Block once exposure meets or exceeds ratio x deposit."""
    ratio = settings.RIDER_BLOCK_RATIO if ratio is None else ratio
    return Decimal(str(unsettled_total)) >= Decimal(str(deposit_amount)) * Decimal(str(ratio))


async def get_rider(session: AsyncSession, rider_id: uuid.UUID) -> Rider:
    rider = await session.get(Rider, rider_id)
    if rider is None:
        raise NotFound("Rider not found", rider_id=str(rider_id))
    return rider


# ── Projection ─────────────────────────────────────────────

async def held_order(session: AsyncSession, rider_id: uuid.UUID) -> LiveOrder | None:
    result = await session.execute(
        select(LiveOrder).where(
            LiveOrder.rider_id == rider_id,
            LiveOrder.status.in_(HELD_ORDER_STATES),
        )
    )
    return result.scalars().first()


async def rider_activity(session: AsyncSession, rider_id: uuid.UUID) -> tuple[RiderActivity, LiveOrder | None]:
    """Derive the rider's current activity from the order they hold."""
    order = await held_order(session, rider_id)
    if order is None:
        return RiderActivity.EMPTY, None
    if order.status == OrderStatus.PICKEDUP:
        return RiderActivity.PICKEDUP, order
    if order.status == OrderStatus.DROP:
        return RiderActivity.DROP, order
    if order.rider_metadata_id is not None:
        meta = await session.get(RiderMetaData, order.rider_metadata_id)
        if meta is not None and meta.reached_restaurant_at is not None:
            return RiderActivity.REACHED, order
    return RiderActivity.ACCEPTED, order


async def current_activity(session: AsyncSession, rider_id: uuid.UUID) -> dict:
    rider = await get_rider(session, rider_id)
    activity, order = await rider_activity(session, rider_id)
    return {
        "rider_id": rider.id,
        "status": activity,
        "on_duty": rider.on_duty,
        "is_blocked": rider.is_blocked,
        "order_id": order.id if order else None,
        "ticket_number": order.ticket_number if order else None,
        "order_status": order.status if order else None,
        "restaurant_status": order.restaurant_status if order else None,
    }


# ── Duty & order feed ──────────────────────────────────────

async def toggle_duty(session: AsyncSession, rider_id: uuid.UUID) -> bool:
    """Flip on_duty. A blocked rider may go off duty but never on."""
    rider = await get_rider(session, rider_id)
    current = rider.on_duty
    if rider.is_blocked and not current:
        raise RiderBlocked("You must deposit collected amount to go on-duty.")

    conditions = [Rider.id == rider_id, Rider.on_duty == current]
    if not current:
        conditions.append(Rider.is_blocked.is_(False))
    flipped = await session.execute(
        update(Rider)
        .where(*conditions)
        .values(on_duty=not current)
        .returning(Rider.on_duty)
        .execution_options(synchronize_session=False)
    )
    new_state = flipped.scalar_one_or_none()
    if new_state is None:
        await session.rollback()
        raise Conflict("Duty status unchanged.")
    await session.commit()
    logger.info("Rider %s on_duty=%s", rider_id, new_state)
    return new_state


async def available_orders(
    session: AsyncSession,
    rider_id: uuid.UUID,
    rider_lat: float,
    rider_lng: float,
) -> list[dict]:
    """Unclaimed orders whose kitchen is almost or fully ready, nearest restaurant first."""
    rider = await get_rider(session, rider_id)
    if rider.is_blocked:
        raise RiderBlocked("Rider is blocked. Settle your collected cash to see new orders.")

    result = await session.execute(
        select(LiveOrder, Restaurant, Customer)
        .join(Restaurant, Restaurant.id == LiveOrder.restaurant_id)
        .join(Customer, Customer.id == LiveOrder.customer_id)
        .where(
            LiveOrder.status == OrderStatus.PREPARING,
            LiveOrder.restaurant_status.in_(BIDDABLE_KITCHEN_STATES),
            LiveOrder.rider_id.is_(None),
        )
    )

    orders = []
    for order, restaurant, customer in result.all():
        hotel_distance = 0.0
        customer_distance = 0.0
        if restaurant.latitude is not None and restaurant.longitude is not None:
            hotel_distance = haversine_distance(rider_lat, rider_lng, restaurant.latitude, restaurant.longitude)
            address = customer.address_at(order.location_index)
            if address and address.get("latitude") is not None:
                customer_distance = haversine_distance(
                    restaurant.latitude, restaurant.longitude,
                    float(address["latitude"]), float(address["longitude"]),
                )
        orders.append({
            "order_id": order.id,
            "ticket_number": order.ticket_number,
            "restaurant_status": order.restaurant_status,
            "hotel_name": restaurant.name,
            "hotel_address": restaurant.address or "N/A",
            "hotel_distance": round(hotel_distance, 2),
            "hotel_travel_time": estimate_duration(hotel_distance),
            "customer_distance": round(customer_distance, 2),
        })
    orders.sort(key=lambda o: o["hotel_distance"])
    return orders


# ── Cash exposure ──────────────────────────────────────────

def _unsettled_cod_filter(rider_id: uuid.UUID):
    return and_(
        PastOrder.rider_id == rider_id,
        PastOrder.status == PastOrderStatus.DELIVERED,
        PaymentLog.mode == PaymentMode.COD,
        PaymentLog.status == PaymentStatus.SUCCESS,
        PaymentLog.is_settled.is_(False),
    )


async def unsettled_cod_total(session: AsyncSession, rider_id: uuid.UUID) -> Decimal:
    total = await session.scalar(
        select(func.coalesce(func.sum(PaymentLog.amount), 0))
        .select_from(PastOrder)
        .join(PaymentLog, PaymentLog.id == PastOrder.payment_id)
        .where(_unsettled_cod_filter(rider_id))
    )
    return Decimal(str(total or 0))


async def collection_report(session: AsyncSession, rider_id: uuid.UUID) -> dict:
    rider = await get_rider(session, rider_id)
    return {
        "amount_to_deposit": await unsettled_cod_total(session, rider_id),
        "deposit_amount": rider.deposit_amount,
        "is_blocked": rider.is_blocked,
    }


async def unsettled_orders(session: AsyncSession, rider_id: uuid.UUID) -> list[dict]:
    result = await session.execute(
        select(PastOrder, PaymentLog, Restaurant.name)
        .join(PaymentLog, PaymentLog.id == PastOrder.payment_id)
        .join(Restaurant, Restaurant.id == PastOrder.restaurant_id)
        .where(_unsettled_cod_filter(rider_id))
        .order_by(PastOrder.delivered_at.desc())
    )
    return [
        {
            "order_id": past.id,
            "ticket_number": past.ticket_number,
            "delivered_at": past.delivered_at,
            "amount": payment.amount,
            "total_price": past.total_price,
            "hotel_name": hotel_name or "Hotel",
            "items": [{"name": i.get("name"), "quantity": i.get("quantity")} for i in past.items],
        }
        for past, payment, hotel_name in result.all()
    ]


async def enforce_block_after_delivery(session: AsyncSession, rider_id: uuid.UUID) -> bool:
    """
    Post-delivery check. Only ever sets the block; lifting it is an admin action.

    Returns True when this call blocked the rider.
    """
    rider = await get_rider(session, rider_id)
    total = await unsettled_cod_total(session, rider_id)
    if not should_block(total, rider.deposit_amount):
        await session.commit()
        return False
    blocked = await session.execute(
        update(Rider)
        .where(Rider.id == rider_id, Rider.is_blocked.is_(False))
        .values(is_blocked=True)
        .returning(Rider.id)
        .execution_options(synchronize_session=False)
    )
    changed = blocked.scalar_one_or_none() is not None
    if changed:
        record_event(
            session, EventType.RIDER_EXPOSURE_CHANGED,
            actor_type="SYSTEM",
            payload={"rider_id": str(rider_id), "unsettled": str(total), "is_blocked": True},
        )
        logger.warning("Rider %s auto-blocked: unsettled COD %s vs deposit %s", rider_id, total, rider.deposit_amount)
    await session.commit()
    return changed


# ── Admin controls ─────────────────────────────────────────

async def block_rider(session: AsyncSession, rider_id: uuid.UUID) -> Rider:
    """Manual block. Refused while the rider holds an order."""
    await get_rider(session, rider_id)
    holding = exists().where(
        LiveOrder.rider_id == rider_id,
        LiveOrder.status.in_(HELD_ORDER_STATES),
    )
    blocked = await session.execute(
        update(Rider)
        .where(Rider.id == rider_id, ~holding)
        .values(is_blocked=True, on_duty=False)
        .returning(Rider.id)
        .execution_options(synchronize_session=False)
    )
    if blocked.scalar_one_or_none() is None:
        await session.rollback()
        raise BusinessRuleViolation("Rider is currently delivering an order and cannot be blocked.")
    await session.commit()
    logger.info("Rider %s blocked by admin", rider_id)
    return await session.get(Rider, rider_id, populate_existing=True)


async def unblock_rider(session: AsyncSession, rider_id: uuid.UUID) -> Rider:
    rider = await get_rider(session, rider_id)
    rider.is_blocked = False
    await session.commit()
    logger.info("Rider %s unblocked by admin", rider_id)
    return rider


async def set_deposit_threshold(session: AsyncSession, rider_id: uuid.UUID, amount: Decimal) -> Rider:
    if amount is None or Decimal(str(amount)) <= 0:
        raise ValidationFailed("Deposit amount must be positive")
    rider = await get_rider(session, rider_id)
    rider.deposit_amount = Decimal(str(amount))
    await session.commit()
    return rider


async def settle_rider_cash(session: AsyncSession, rider_id: uuid.UUID, admin_id: uuid.UUID) -> dict:
    """Mark the rider's delivered, collected COD payments as handed over, then re-evaluate the block."""
    rider = await get_rider(session, rider_id)
    delivered_payments = select(PastOrder.payment_id).where(
        PastOrder.rider_id == rider_id,
        PastOrder.status == PastOrderStatus.DELIVERED,
    )
    settled = await session.execute(
        update(PaymentLog)
        .where(
            PaymentLog.id.in_(delivered_payments),
            PaymentLog.mode == PaymentMode.COD,
            PaymentLog.status == PaymentStatus.SUCCESS,
            PaymentLog.is_settled.is_(False),
        )
        .values(is_settled=True, settled_at=utcnow(), settled_by=admin_id)
        .returning(PaymentLog.amount)
        .execution_options(synchronize_session=False)
    )
    amounts = list(settled.scalars().all())

    remaining = await unsettled_cod_total(session, rider_id)
    blocked = should_block(remaining, rider.deposit_amount)
    rider.is_blocked = blocked
    record_event(
        session, EventType.RIDER_EXPOSURE_CHANGED,
        actor_type="ADMIN", actor_id=admin_id,
        payload={"rider_id": str(rider_id), "unsettled": str(remaining), "is_blocked": blocked},
    )
    await session.commit()
    logger.info("Settled %d COD payments for rider %s", len(amounts), rider_id)
    return {
        "settled_count": len(amounts),
        "settled_amount": sum(amounts, Decimal("0")),
        "remaining": remaining,
        "is_blocked": blocked,
    }
