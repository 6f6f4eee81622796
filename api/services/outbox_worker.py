"""
Outbox worker — turns committed order events into side effects.

Side effects here are pushes to customers/restaurants and the post-delivery
COD exposure check. None of them run inside the transaction that changed the
order; a failed handler leaves the event for the next poll until
OUTBOX_MAX_ATTEMPTS is reached, after which ops are alerted.
"""

import asyncio
import logging
import uuid

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models.customer import Customer
from models.enums import EventType, PaymentMode
from models.order import OrderEvent
from models.restaurant import Restaurant
from services import dispatch
from services.notifications import send_push, notify_admin
from services.outbox import pending_event_ids, claim_event, mark_processed, mark_failed

logger = logging.getLogger(__name__)

CUSTOMER_MESSAGES = {
    EventType.ORDER_ACCEPTED: (
        "Order Accepted 👨‍🍳",
        "The restaurant has accepted your order and started preparing it.",
    ),
    EventType.ORDER_PICKEDUP: (
        "🍽️ Your food is on the way!",
        "Our delivery partner has picked up your order and is heading to you.",
    ),
    EventType.ORDER_DROP: (
        "🏠 Your order has arrived!",
        "Your food has arrived! Please collect it at your door.",
    ),
    EventType.ORDER_CANCELLED: (
        "Order Cancelled",
        "Your order has been cancelled.",
    ),
    EventType.ORDER_REJECTED: (
        "Order Rejected",
        "Sorry, the restaurant couldn't take your order right now.",
    ),
}

ORDER_CONFIRMED = (
    "Order Confirmed: Preparation Starts 👨‍🍳",
    "Your grub is being prepared! We'll notify you once our delivery partner picks it up. 🏍️",
)
NEW_ORDER = (
    "🚨 Incoming Order Request!",
    "Someone's hungry and counting on you. Tap to accept.⚡️",
)


def _uuid(value) -> uuid.UUID | None:
    return uuid.UUID(str(value)) if value else None


async def _prune_tokens(session: AsyncSession, model, row_id: uuid.UUID, current: list[str], dead: list[str]) -> None:
    if not dead:
        return
    kept = [t for t in current if t not in dead]
    await session.execute(
        update(model).where(model.id == row_id).values(fcm_tokens=kept).execution_options(synchronize_session=False)
    )
    await session.commit()
    logger.info("Pruned %d dead push tokens from %s %s", len(dead), model.__name__, row_id)


async def push_customer(session: AsyncSession, customer_id: uuid.UUID | None, message: tuple[str, str], data: dict) -> bool:
    if customer_id is None:
        return False
    customer = await session.get(Customer, customer_id)
    if customer is None or not customer.notifications_enabled or not customer.fcm_tokens:
        return False
    title, body = message
    result = await send_push(customer.fcm_tokens, title, body, data)
    await _prune_tokens(session, Customer, customer.id, customer.fcm_tokens, result.invalid_tokens)
    return result.sent > 0


async def push_restaurant(session: AsyncSession, restaurant_id: uuid.UUID | None, message: tuple[str, str], data: dict) -> bool:
    if restaurant_id is None:
        return False
    restaurant = await session.get(Restaurant, restaurant_id)
    if restaurant is None or not restaurant.fcm_tokens:
        return False
    title, body = message
    result = await send_push(restaurant.fcm_tokens, title, body, data)
    await _prune_tokens(session, Restaurant, restaurant.id, restaurant.fcm_tokens, result.invalid_tokens)
    return result.sent > 0


async def handle_event(session: AsyncSession, event: OrderEvent) -> None:
    payload = event.payload or {}
    data = {"type": event.event_type.value, "order_id": event.order_id, "ticket_number": event.ticket_number}

    if event.event_type == EventType.ORDER_CREATED:
        await push_restaurant(session, _uuid(payload.get("restaurant_id")), NEW_ORDER, data)
        if payload.get("notify_customer"):
            await push_customer(session, _uuid(payload.get("customer_id")), ORDER_CONFIRMED, data)

    elif event.event_type == EventType.ORDER_DELIVERED:
        rider_id = _uuid(payload.get("rider_id"))
        if rider_id and payload.get("mode") == PaymentMode.COD.value:
            await dispatch.enforce_block_after_delivery(session, rider_id)

    elif event.event_type in CUSTOMER_MESSAGES:
        await push_customer(session, _uuid(payload.get("customer_id")), CUSTOMER_MESSAGES[event.event_type], data)

    else:
        logger.debug("No handler for %s (event %s)", event.event_type, event.id)


async def dispatch_pending(session_factory: async_sessionmaker, limit: int = 50) -> int:
    """Run one batch of pending events. Returns how many were processed."""
    async with session_factory() as session:
        ids = await pending_event_ids(session, limit)

    processed = 0
    for event_id in ids:
        async with session_factory() as session:
            event = await claim_event(session, event_id)
            if event is None:
                continue
            # rollback expires the instance
            event_type, ticket, attempts = event.event_type, event.ticket_number, event.attempts
            try:
                await handle_event(session, event)
            except Exception as e:
                await session.rollback()
                logger.exception("Outbox event %s (%s) failed", event_id, event_type)
                await mark_failed(session, event_id, str(e) or e.__class__.__name__)
                if attempts >= settings.OUTBOX_MAX_ATTEMPTS:
                    await notify_admin(
                        f"❌ Outbox event {event_id} ({event_type.value}) for ticket "
                        f"#{ticket} gave up after {attempts} attempts\nError: {e}"
                    )
                continue
            await mark_processed(session, event_id)
            processed += 1
    return processed


async def run_outbox_worker(session_factory: async_sessionmaker, stop: asyncio.Event) -> None:
    logger.info("Outbox worker started (poll every %.1fs)", settings.OUTBOX_POLL_SECONDS)
    while not stop.is_set():
        try:
            await dispatch_pending(session_factory)
        except Exception:
            logger.exception("Outbox poll failed")
        try:
            await asyncio.wait_for(stop.wait(), timeout=settings.OUTBOX_POLL_SECONDS)
        except asyncio.TimeoutError:
            pass
    logger.info("Outbox worker stopped")
