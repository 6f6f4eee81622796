"""
Order state machine for live orders.

    PENDING --restaurant accepts--> PREPARING --rider claims--> ACCEPTED
    ACCEPTED --pickup (kitchen READY)--> PICKEDUP --arrived--> DROP
    DROP --correct OTP--> DELIVERED (archived)
    any non-terminal --cancel/reject--> CANCELLED | REJECTED (archived)

restaurant_status (PREPARING -> ALMOST_READY -> READY) moves forward only and
is driven by the restaurant. Every transition is a single conditional UPDATE
(or DELETE, for archival) whose WHERE clause restates the state it expects;
the outbox event for the transition is written in the same transaction.
"""

import logging
import uuid
from decimal import Decimal

from sqlalchemy import select, update, delete, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from models.customer import Customer
from models.enums import (
    OrderStatus, RestaurantStatus, PastOrderStatus, PaymentMode, PaymentStatus, EventType,
)
from models.order import LiveOrder, PastOrder
from models.payment import PaymentLog
from models.restaurant import Restaurant, Listing
from models.rider import Rider, RiderMetaData
from services.clock import utcnow
from services.errors import NotFound, Conflict, BusinessRuleViolation, RiderBlocked, ValidationFailed
from services.otp import verify_otp
from services.outbox import record_event

logger = logging.getLogger(__name__)

CLAIMABLE_KITCHEN_STATES = (RestaurantStatus.ALMOST_READY, RestaurantStatus.READY)
KITCHEN_ORDER = [RestaurantStatus.PREPARING, RestaurantStatus.ALMOST_READY, RestaurantStatus.READY]
# Kitchen progress can still be reported while the order waits for, or sits with, a rider
KITCHEN_EDITABLE_STATES = (OrderStatus.PREPARING, OrderStatus.ACCEPTED)
CANCELLABLE_STATES = (
    OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.ACCEPTED,
    OrderStatus.PICKEDUP, OrderStatus.DROP,
)


async def _load_live(session: AsyncSession, order_id: uuid.UUID) -> LiveOrder:
    order = await session.get(LiveOrder, order_id, populate_existing=True)
    if order is None:
        raise NotFound("Order not found", order_id=str(order_id))
    return order


def _held_by(order: LiveOrder, rider_id: uuid.UUID) -> None:
    if order.rider_id != rider_id:
        raise Conflict("Order is assigned to another rider")


async def _free_rider(session: AsyncSession, rider_id: uuid.UUID | None, order_id: uuid.UUID) -> None:
    if rider_id is None:
        return
    await session.execute(
        update(Rider)
        .where(Rider.id == rider_id, or_(Rider.serving_order_id == order_id, Rider.serving_order_id.is_(None)))
        .values(is_available=True, serving_order_id=None)
        .execution_options(synchronize_session=False)
    )


async def _denormalize_items(session: AsyncSession, items: list[dict]) -> list[dict]:
    """Snapshot listing name and price as they are right now."""
    listing_ids = [uuid.UUID(str(i["listing_id"])) for i in items]
    rows = await session.execute(select(Listing).where(Listing.id.in_(listing_ids)))
    listings = {l.id: l for l in rows.scalars().all()}

    snapshot = []
    for item in items:
        listing = listings.get(uuid.UUID(str(item["listing_id"])))
        if listing is not None:
            name, price = listing.name, listing.discounted_price
        else:
            logger.warning("Listing %s vanished before archival; using order-time price", item["listing_id"])
            name, price = item.get("name", "Item"), Decimal(str(item.get("unit_price", 0)))
        snapshot.append({
            "listing_id": str(item["listing_id"]),
            "name": name,
            "price": str(Decimal(str(price)).quantize(Decimal("0.01"))),
            "quantity": int(item["quantity"]),
        })
    return snapshot


async def _archive(
    session: AsyncSession,
    seen: LiveOrder,
    final_status: PastOrderStatus,
    *,
    reason: str | None = None,
) -> PastOrder:
    """
    Move a live order to the past set.

    The DELETE only matches if the row still looks exactly like `seen`; a
    concurrent transition in between makes it match nothing and the caller
    gets a Conflict instead of archiving a stale snapshot.
    """
    rider_match = LiveOrder.rider_id.is_(None) if seen.rider_id is None else LiveOrder.rider_id == seen.rider_id
    removed = await session.execute(
        delete(LiveOrder)
        .where(
            LiveOrder.id == seen.id,
            LiveOrder.status == seen.status,
            LiveOrder.restaurant_status == seen.restaurant_status,
            rider_match,
        )
        .returning(LiveOrder.id)
        .execution_options(synchronize_session=False)
    )
    if removed.scalar_one_or_none() is None:
        await session.rollback()
        raise Conflict("Order changed while it was being closed; refresh and retry")

    now = utcnow()
    customer = await session.get(Customer, seen.customer_id)
    address = customer.address_at(seen.location_index) if customer else None

    past = PastOrder(
        id=seen.id,
        ticket_number=seen.ticket_number,
        customer_id=seen.customer_id,
        restaurant_id=seen.restaurant_id,
        rider_id=seen.rider_id,
        rider_metadata_id=seen.rider_metadata_id,
        payment_id=seen.payment_id,
        mode=seen.mode,
        items=await _denormalize_items(session, seen.items),
        total_price=seen.total_price,
        delivery_address=dict(address) if address else None,
        status=final_status,
        reason=reason,
        preparation_time=seen.preparation_time,
        ordered_at=seen.ordered_at,
        served_at=seen.served_at,
        arrived_at=seen.arrived_at,
        delivered_at=now if final_status == PastOrderStatus.DELIVERED else None,
        closed_at=now,
    )
    session.add(past)
    session.expunge(seen)
    await _free_rider(session, seen.rider_id, seen.id)
    return past


# ── Restaurant transitions ─────────────────────────────────

async def accept_order(
    session: AsyncSession,
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    preparation_time: int,
) -> LiveOrder:
    """PENDING -> PREPARING."""
    if preparation_time is None or preparation_time <= 0:
        raise ValidationFailed("preparation_time must be a positive number of minutes")

    accepted = await session.execute(
        update(LiveOrder)
        .where(
            LiveOrder.id == order_id,
            LiveOrder.restaurant_id == restaurant_id,
            LiveOrder.status == OrderStatus.PENDING,
        )
        .values(status=OrderStatus.PREPARING, preparation_time=preparation_time)
        .returning(LiveOrder.ticket_number, LiveOrder.customer_id)
        .execution_options(synchronize_session=False)
    )
    row = accepted.one_or_none()
    if row is None:
        await session.rollback()
        order = await _load_live(session, order_id)
        if order.restaurant_id != restaurant_id:
            raise NotFound("Order not found", order_id=str(order_id))
        raise BusinessRuleViolation(f"Order is {order.status.value}, not PENDING")

    ticket = row.ticket_number
    record_event(
        session, EventType.ORDER_ACCEPTED,
        order_id=order_id, ticket_number=ticket,
        from_status=OrderStatus.PENDING, to_status=OrderStatus.PREPARING,
        actor_type="RESTAURANT", actor_id=restaurant_id,
        payload={"preparation_time": preparation_time, "customer_id": str(row.customer_id)},
    )
    await session.commit()
    logger.info("Order #%s accepted by restaurant %s (%d min)", ticket, restaurant_id, preparation_time)
    return await _load_live(session, order_id)


async def _advance_kitchen(
    session: AsyncSession,
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    target: RestaurantStatus,
) -> LiveOrder:
    earlier = KITCHEN_ORDER[: KITCHEN_ORDER.index(target)]
    values = {"restaurant_status": target}
    if target == RestaurantStatus.READY:
        values["served_at"] = utcnow()

    advanced = await session.execute(
        update(LiveOrder)
        .where(
            LiveOrder.id == order_id,
            LiveOrder.restaurant_id == restaurant_id,
            LiveOrder.status.in_(KITCHEN_EDITABLE_STATES),
            LiveOrder.restaurant_status.in_(earlier),
        )
        .values(**values)
        .returning(LiveOrder.ticket_number, LiveOrder.status)
        .execution_options(synchronize_session=False)
    )
    row = advanced.first()
    if row is None:
        await session.rollback()
        order = await _load_live(session, order_id)
        if order.restaurant_id != restaurant_id:
            raise NotFound("Order not found", order_id=str(order_id))
        if order.restaurant_status == target and order.status in KITCHEN_EDITABLE_STATES:
            return order
        if order.status not in KITCHEN_EDITABLE_STATES:
            raise BusinessRuleViolation(f"Order is {order.status.value}; kitchen status can't change")
        raise BusinessRuleViolation(f"Order is already {order.restaurant_status.value}")

    if target == RestaurantStatus.READY:
        record_event(
            session, EventType.ORDER_READY,
            order_id=order_id, ticket_number=row.ticket_number,
            from_status=row.status, to_status=row.status,
            actor_type="RESTAURANT", actor_id=restaurant_id,
        )
    await session.commit()
    logger.info("Order #%s kitchen -> %s", row.ticket_number, target.value)
    return await _load_live(session, order_id)


async def mark_almost_ready(session: AsyncSession, restaurant_id: uuid.UUID, order_id: uuid.UUID) -> LiveOrder:
    return await _advance_kitchen(session, restaurant_id, order_id, RestaurantStatus.ALMOST_READY)


async def mark_ready(session: AsyncSession, restaurant_id: uuid.UUID, order_id: uuid.UUID) -> LiveOrder:
    return await _advance_kitchen(session, restaurant_id, order_id, RestaurantStatus.READY)


async def _close_unfulfilled(
    session: AsyncSession,
    order: LiveOrder,
    final: PastOrderStatus,
    event_type: EventType,
    reason: str | None,
    actor_type: str,
    actor_id: uuid.UUID | None,
) -> PastOrder:
    from_status = order.status
    past = await _archive(session, order, final, reason=reason)
    if order.mode == PaymentMode.COD:
        # Cash was never collected; the COD log is closed as a failure
        await session.execute(
            update(PaymentLog)
            .where(PaymentLog.id == order.payment_id, PaymentLog.status == PaymentStatus.NOT_COLLECTED)
            .values(status=PaymentStatus.FAILURE)
            .execution_options(synchronize_session=False)
        )
    record_event(
        session, event_type,
        order_id=past.id, ticket_number=past.ticket_number,
        from_status=from_status, to_status=final.value,
        actor_type=actor_type, actor_id=actor_id,
        payload={
            "reason": reason,
            "mode": order.mode.value,
            "customer_id": str(order.customer_id),
            "rider_id": str(order.rider_id) if order.rider_id else None,
        },
    )
    await session.commit()
    logger.info("Order #%s closed as %s by %s (%s)", past.ticket_number, final.value, actor_type, reason)
    return past


async def reject_order(
    session: AsyncSession,
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    reason: str | None = None,
) -> PastOrder:
    """PENDING -> REJECTED. Only before the restaurant has accepted."""
    order = await _load_live(session, order_id)
    if order.restaurant_id != restaurant_id:
        raise NotFound("Order not found", order_id=str(order_id))
    if order.status != OrderStatus.PENDING:
        raise BusinessRuleViolation(f"Only pending orders can be rejected (order is {order.status.value})")
    return await _close_unfulfilled(
        session, order, PastOrderStatus.REJECTED, EventType.ORDER_REJECTED, reason, "RESTAURANT", restaurant_id,
    )


async def cancel_order(
    session: AsyncSession,
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    reason: str | None = None,
) -> PastOrder:
    """Any non-terminal state -> CANCELLED. Frees the rider if one was assigned."""
    order = await _load_live(session, order_id)
    if order.restaurant_id != restaurant_id:
        raise NotFound("Order not found", order_id=str(order_id))
    if order.status not in CANCELLABLE_STATES:
        raise BusinessRuleViolation(f"Order is {order.status.value} and can't be cancelled")
    return await _close_unfulfilled(
        session, order, PastOrderStatus.CANCELLED, EventType.ORDER_CANCELLED, reason, "RESTAURANT", restaurant_id,
    )


async def cancel_live_order(
    session: AsyncSession,
    customer_id: uuid.UUID,
    order_id: uuid.UUID,
    reason: str | None = None,
) -> PastOrder:
    """Customer cancellation from any non-terminal state. Frees the rider if one was assigned."""
    order = await _load_live(session, order_id)
    if order.customer_id != customer_id:
        raise NotFound("Order not found", order_id=str(order_id))
    if order.status not in CANCELLABLE_STATES:
        raise BusinessRuleViolation(f"Order is {order.status.value} and can't be cancelled")
    return await _close_unfulfilled(
        session, order, PastOrderStatus.CANCELLED, EventType.ORDER_CANCELLED,
        reason or "Cancelled by customer", "CUSTOMER", customer_id,
    )


# ── Rider transitions ──────────────────────────────────────

async def claim_order(
    session: AsyncSession,
    rider_id: uuid.UUID,
    order_id: uuid.UUID,
    telemetry: dict | None = None,
) -> LiveOrder:
    """
    Make `rider_id` the exclusive fulfiller of the order.

    Succeeds when the order is unclaimed, PREPARING and its kitchen is at least
    ALMOST_READY, or when the same rider re-sends the claim while still
    ACCEPTED. A rider already moved past ACCEPTED must use the forward
    transitions instead.
    """
    rider = await session.get(Rider, rider_id, populate_existing=True)
    if rider is None:
        raise NotFound("Rider not found", rider_id=str(rider_id))
    if rider.is_blocked:
        raise RiderBlocked("Rider is blocked. Settle your collected cash to accept orders.")
    if not rider.on_duty:
        raise BusinessRuleViolation("Go on duty to accept orders")

    # Order row first, then the rider row: the same order archival locks them in
    claimed = await session.execute(
        update(LiveOrder)
        .where(
            LiveOrder.id == order_id,
            or_(
                and_(
                    LiveOrder.status == OrderStatus.PREPARING,
                    LiveOrder.rider_id.is_(None),
                    LiveOrder.restaurant_status.in_(CLAIMABLE_KITCHEN_STATES),
                ),
                and_(
                    LiveOrder.status == OrderStatus.ACCEPTED,
                    LiveOrder.rider_id == rider_id,
                ),
            ),
        )
        .values(status=OrderStatus.ACCEPTED, rider_id=rider_id)
        .returning(LiveOrder.ticket_number, LiveOrder.rider_metadata_id)
        .execution_options(synchronize_session=False)
    )
    row = claimed.first()
    if row is None:
        await session.rollback()
        order = await session.get(LiveOrder, order_id, populate_existing=True)
        if order is None:
            raise NotFound("Order not found", order_id=str(order_id))
        if order.rider_id is not None and order.rider_id != rider_id:
            raise Conflict("Order already accepted by another rider")
        if order.rider_id == rider_id:
            raise BusinessRuleViolation(f"Order is already {order.status.value}; continue with the next step")
        raise BusinessRuleViolation("Order is not ready for riders yet")

    # One order per rider: a rider already serving elsewhere undoes the claim
    reserved = await session.execute(
        update(Rider)
        .where(
            Rider.id == rider_id,
            Rider.is_blocked.is_(False),
            or_(Rider.serving_order_id.is_(None), Rider.serving_order_id == order_id),
        )
        .values(is_available=False, serving_order_id=order_id)
        .returning(Rider.id)
        .execution_options(synchronize_session=False)
    )
    if reserved.scalar_one_or_none() is None:
        await session.rollback()
        rider = await session.get(Rider, rider_id, populate_existing=True)
        if rider is not None and rider.is_blocked:
            raise RiderBlocked("Rider is blocked. Settle your collected cash to accept orders.")
        raise BusinessRuleViolation("You are already serving another order")

    if row.rider_metadata_id is None:
        telemetry = telemetry or {}
        meta = RiderMetaData(
            rider_id=rider_id,
            order_id=order_id,
            accepted_at_lat=telemetry.get("latitude"),
            accepted_at_lng=telemetry.get("longitude"),
            restaurant_distance_at_accept=telemetry.get("hotel_distance"),
            customer_distance_at_accept=telemetry.get("customer_distance"),
        )
        session.add(meta)
        await session.flush()
        await session.execute(
            update(LiveOrder)
            .where(LiveOrder.id == order_id)
            .values(rider_metadata_id=meta.id)
            .execution_options(synchronize_session=False)
        )
        record_event(
            session, EventType.ORDER_CLAIMED,
            order_id=order_id, ticket_number=row.ticket_number,
            from_status=OrderStatus.PREPARING, to_status=OrderStatus.ACCEPTED,
            actor_type="RIDER", actor_id=rider_id,
        )
        logger.info("Order #%s claimed by rider %s", row.ticket_number, rider_id)

    await session.commit()
    return await _load_live(session, order_id)


async def reached_pickup(
    session: AsyncSession,
    rider_id: uuid.UUID,
    order_id: uuid.UUID,
    selfie_url: str,
) -> RiderMetaData:
    """Record arrival at the restaurant. No order status change."""
    if not selfie_url:
        raise ValidationFailed("A selfie at the restaurant is required")
    order = await _load_live(session, order_id)
    _held_by(order, rider_id)
    if order.status != OrderStatus.ACCEPTED or order.rider_metadata_id is None:
        raise BusinessRuleViolation(f"Order is {order.status.value}; arrival can only be marked after accepting")

    await session.execute(
        update(RiderMetaData)
        .where(RiderMetaData.id == order.rider_metadata_id, RiderMetaData.reached_restaurant_at.is_(None))
        .values(reached_restaurant_at=utcnow(), selfie_at_restaurant=selfie_url)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return await session.get(RiderMetaData, order.rider_metadata_id, populate_existing=True)


async def order_picked_up(session: AsyncSession, rider_id: uuid.UUID, order_id: uuid.UUID) -> LiveOrder:
    """ACCEPTED -> PICKEDUP, only once the kitchen has marked the order READY."""
    order = await _load_live(session, order_id)
    if order.restaurant_status != RestaurantStatus.READY:
        raise BusinessRuleViolation("Can't pick up: order not marked as READY")
    _held_by(order, rider_id)
    if order.status == OrderStatus.PICKEDUP:
        return order
    if order.status != OrderStatus.ACCEPTED:
        raise BusinessRuleViolation(f"Order is {order.status.value}, not ACCEPTED")

    moved = await session.execute(
        update(LiveOrder)
        .where(
            LiveOrder.id == order_id,
            LiveOrder.rider_id == rider_id,
            LiveOrder.status == OrderStatus.ACCEPTED,
            LiveOrder.restaurant_status == RestaurantStatus.READY,
        )
        .values(status=OrderStatus.PICKEDUP)
        .returning(LiveOrder.id)
        .execution_options(synchronize_session=False)
    )
    if moved.scalar_one_or_none() is None:
        await session.rollback()
        raise Conflict("Order changed while confirming pickup; refresh and retry")

    if order.rider_metadata_id is not None:
        await session.execute(
            update(RiderMetaData)
            .where(RiderMetaData.id == order.rider_metadata_id, RiderMetaData.pickup_confirmed_at.is_(None))
            .values(pickup_confirmed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
    record_event(
        session, EventType.ORDER_PICKEDUP,
        order_id=order_id, ticket_number=order.ticket_number,
        from_status=OrderStatus.ACCEPTED, to_status=OrderStatus.PICKEDUP,
        actor_type="RIDER", actor_id=rider_id,
        payload={"customer_id": str(order.customer_id)},
    )
    await session.commit()
    logger.info("Order #%s picked up by rider %s", order.ticket_number, rider_id)
    return await _load_live(session, order_id)


async def order_reached_drop(session: AsyncSession, rider_id: uuid.UUID, order_id: uuid.UUID) -> LiveOrder:
    """PICKEDUP -> DROP."""
    order = await _load_live(session, order_id)
    _held_by(order, rider_id)
    if order.status == OrderStatus.DROP:
        return order
    if order.status != OrderStatus.PICKEDUP:
        raise BusinessRuleViolation(f"Order is {order.status.value}, not PICKEDUP")

    now = utcnow()
    moved = await session.execute(
        update(LiveOrder)
        .where(
            LiveOrder.id == order_id,
            LiveOrder.rider_id == rider_id,
            LiveOrder.status == OrderStatus.PICKEDUP,
        )
        .values(status=OrderStatus.DROP, arrived_at=now)
        .returning(LiveOrder.id)
        .execution_options(synchronize_session=False)
    )
    if moved.scalar_one_or_none() is None:
        await session.rollback()
        raise Conflict("Order changed while marking arrival; refresh and retry")

    if order.rider_metadata_id is not None:
        await session.execute(
            update(RiderMetaData)
            .where(RiderMetaData.id == order.rider_metadata_id, RiderMetaData.drop_at.is_(None))
            .values(drop_at=now)
            .execution_options(synchronize_session=False)
        )
    record_event(
        session, EventType.ORDER_DROP,
        order_id=order_id, ticket_number=order.ticket_number,
        from_status=OrderStatus.PICKEDUP, to_status=OrderStatus.DROP,
        actor_type="RIDER", actor_id=rider_id,
        payload={"customer_id": str(order.customer_id)},
    )
    await session.commit()
    return await _load_live(session, order_id)


async def change_status(
    session: AsyncSession,
    rider_id: uuid.UUID,
    order_id: uuid.UUID,
    status: str,
) -> LiveOrder:
    """Single-endpoint variant of the rider transitions (claim, pickup, drop)."""
    try:
        target = OrderStatus(status)
    except ValueError:
        raise ValidationFailed(f"Unknown status {status!r}")
    if target == OrderStatus.ACCEPTED:
        return await claim_order(session, rider_id, order_id)
    if target == OrderStatus.PICKEDUP:
        return await order_picked_up(session, rider_id, order_id)
    if target == OrderStatus.DROP:
        return await order_reached_drop(session, rider_id, order_id)
    raise BusinessRuleViolation(f"Riders can't move an order to {target.value}")


async def complete_order(
    session: AsyncSession,
    rider_id: uuid.UUID,
    order_id: uuid.UUID,
    otp: str | int,
) -> PastOrder:
    """
    DROP -> DELIVERED with the customer's OTP.

    In one transaction: remove the live row, write the denormalized past row,
    mark the COD payment collected, free the rider and stamp delivered_at on
    the rider metadata. The exposure check runs afterwards from the outbox.
    """
    order = await _load_live(session, order_id)
    _held_by(order, rider_id)
    if order.status != OrderStatus.DROP:
        raise BusinessRuleViolation(f"Order is {order.status.value}; mark arrival at the drop point first")
    if not verify_otp(order.otp, otp):
        raise BusinessRuleViolation("Invalid OTP")

    past = await _archive(session, order, PastOrderStatus.DELIVERED)

    payment_values = {"rider_id": rider_id}
    if order.mode == PaymentMode.COD:
        collected = await session.execute(
            update(PaymentLog)
            .where(PaymentLog.id == order.payment_id, PaymentLog.status == PaymentStatus.NOT_COLLECTED)
            .values(status=PaymentStatus.SUCCESS, **payment_values)
            .returning(PaymentLog.id)
            .execution_options(synchronize_session=False)
        )
        if collected.scalar_one_or_none() is None:
            await session.rollback()
            raise Conflict("Cash payment for this order is not awaiting collection")
    else:
        await session.execute(
            update(PaymentLog)
            .where(PaymentLog.id == order.payment_id)
            .values(**payment_values)
            .execution_options(synchronize_session=False)
        )

    if order.rider_metadata_id is not None:
        await session.execute(
            update(RiderMetaData)
            .where(RiderMetaData.id == order.rider_metadata_id, RiderMetaData.delivered_at.is_(None))
            .values(delivered_at=past.delivered_at)
            .execution_options(synchronize_session=False)
        )
    record_event(
        session, EventType.ORDER_DELIVERED,
        order_id=past.id, ticket_number=past.ticket_number,
        from_status=OrderStatus.DROP, to_status=OrderStatus.DELIVERED,
        actor_type="RIDER", actor_id=rider_id,
        payload={"rider_id": str(rider_id), "mode": order.mode.value, "customer_id": str(order.customer_id)},
    )
    await session.commit()
    logger.info("Order #%s delivered by rider %s", past.ticket_number, rider_id)
    return past


# ── Views ──────────────────────────────────────────────────

def _live_payload(order: LiveOrder, restaurant: Restaurant | None, rider: Rider | None, with_otp: bool) -> dict:
    data = {
        "order_id": order.id,
        "ticket_number": order.ticket_number,
        "status": order.status,
        "restaurant_status": order.restaurant_status,
        "mode": order.mode,
        "total_price": order.total_price,
        "items": order.items,
        "location_index": order.location_index,
        "preparation_time": order.preparation_time,
        "ordered_at": order.ordered_at,
        "served_at": order.served_at,
        "arrived_at": order.arrived_at,
        "restaurant": {"id": restaurant.id, "name": restaurant.name, "phone": restaurant.phone} if restaurant else None,
        "rider": {"id": rider.id, "name": rider.name, "phone": rider.phone} if rider else None,
    }
    if with_otp:
        data["otp"] = order.otp
    return data


async def live_order_view(session: AsyncSession, order_id: uuid.UUID, customer_id: uuid.UUID | None = None) -> dict:
    order = await _load_live(session, order_id)
    if customer_id is not None and order.customer_id != customer_id:
        raise NotFound("Order not found", order_id=str(order_id))
    restaurant = await session.get(Restaurant, order.restaurant_id)
    rider = await session.get(Rider, order.rider_id) if order.rider_id else None
    return _live_payload(order, restaurant, rider, with_otp=customer_id is not None)


async def live_orders_for_customer(session: AsyncSession, customer_id: uuid.UUID) -> list[dict]:
    rows = await session.execute(
        select(LiveOrder, Restaurant)
        .join(Restaurant, Restaurant.id == LiveOrder.restaurant_id)
        .where(LiveOrder.customer_id == customer_id)
        .order_by(LiveOrder.ordered_at.desc())
    )
    views = []
    for order, restaurant in rows.all():
        rider = await session.get(Rider, order.rider_id) if order.rider_id else None
        views.append(_live_payload(order, restaurant, rider, with_otp=True))
    return views


async def past_orders_for_customer(session: AsyncSession, customer_id: uuid.UUID, limit: int = 50) -> list[dict]:
    rows = await session.execute(
        select(PastOrder, Restaurant.name)
        .join(Restaurant, Restaurant.id == PastOrder.restaurant_id)
        .where(PastOrder.customer_id == customer_id)
        .order_by(PastOrder.ordered_at.desc())
        .limit(limit)
    )
    return [
        {
            "order_id": past.id,
            "ticket_number": past.ticket_number,
            "status": past.status,
            "hotel_name": hotel_name,
            "items": past.items,
            "total_price": past.total_price,
            "delivery_address": past.delivery_address,
            "ordered_at": past.ordered_at,
            "delivered_at": past.delivered_at,
            "reason": past.reason,
        }
        for past, hotel_name in rows.all()
    ]


async def orders_for_restaurant(
    session: AsyncSession,
    restaurant_id: uuid.UUID,
    statuses: tuple[OrderStatus, ...],
) -> list[LiveOrder]:
    rows = await session.execute(
        select(LiveOrder)
        .where(LiveOrder.restaurant_id == restaurant_id, LiveOrder.status.in_(statuses))
        .order_by(LiveOrder.ordered_at)
    )
    return list(rows.scalars().all())


async def order_support_contact(session: AsyncSession, order_id: uuid.UUID, support_contact: str | None) -> dict:
    order = await _load_live(session, order_id)
    restaurant = await session.get(Restaurant, order.restaurant_id)
    if restaurant is None or not restaurant.phone:
        raise NotFound("Support contact not available")
    return {"hotel": restaurant.phone, "support": support_contact or None}
