"""
Payment reconciliation — turns a checkout into a live order.

COD:     PaymentLog(NOT_COLLECTED) + LiveOrder(PENDING) in one transaction.
ONLINE:  gateway order first (no transaction open), then PaymentLog(PENDING) +
         DraftOrder(AWAITING_PAYMENT). The gateway webhook (or the pending
         reconciler) later promotes the draft to a LiveOrder exactly once.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select, update, delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models.customer import Customer
from models.enums import DraftStatus, OrderStatus, PaymentMode, PaymentStatus, EventType
from models.order import DraftOrder, LiveOrder, PastOrder
from models.payment import PaymentLog
from models.restaurant import Restaurant, Listing
from services import payment_gateway
from services.app_config import ConfigSnapshot
from services.clock import utcnow, is_after_cutoff
from services.errors import (
    NotFound, Conflict, BusinessRuleViolation, ValidationFailed, Unauthorized,
)
from services.geofence import match_buffered, in_exact_area
from services.notifications import notify_admin
from services.otp import (
    generate_ticket_number, generate_otp, generate_transaction_id, generate_merchant_order_id,
)
from services.outbox import record_event

logger = logging.getLogger(__name__)

MAX_QUANTITY_PER_LINE = 50
AMOUNT_TOLERANCE = Decimal("0.01")
WEBHOOK_EVENT = "checkout.order.completed"


@dataclass
class Quote:
    restaurant: Restaurant
    lines: list[dict]
    subtotal: Decimal
    delivery_fee: Decimal
    platform_fee: Decimal

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.delivery_fee + self.platform_fee


def validate_checkout(items: list[dict], location_index: int, amount) -> Decimal:
    """Shape checks that need no database access."""
    if not items:
        raise ValidationFailed("Order must contain at least one item")
    for item in items:
        if not item.get("listing_id"):
            raise ValidationFailed("Every item needs a listing_id")
        qty = item.get("quantity")
        if not isinstance(qty, int) or isinstance(qty, bool) or not 0 < qty <= MAX_QUANTITY_PER_LINE:
            raise ValidationFailed(f"Quantity must be between 1 and {MAX_QUANTITY_PER_LINE}")
    if location_index is None or location_index < 0:
        raise ValidationFailed("location_index is required")
    try:
        amount = Decimal(str(amount))
    except ArithmeticError:
        raise ValidationFailed("amount must be a number")
    if amount <= 0:
        raise ValidationFailed("amount must be positive")
    return amount


async def _delivery_address(session: AsyncSession, customer_id: uuid.UUID, location_index: int) -> tuple[Customer, dict]:
    customer = await session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found", customer_id=str(customer_id))
    address = customer.address_at(location_index)
    if address is None:
        raise ValidationFailed("Selected address does not exist")
    return customer, address


async def build_quote(
    session: AsyncSession,
    restaurant_id: uuid.UUID,
    items: list[dict],
    address: dict,
    config: ConfigSnapshot,
) -> Quote:
    restaurant = await session.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise NotFound("Restaurant not found", restaurant_id=str(restaurant_id))
    if not restaurant.is_serving:
        raise BusinessRuleViolation("Restaurant is not accepting orders right now")

    area = match_buffered(float(address["latitude"]), float(address["longitude"]))
    if not in_exact_area(area, restaurant.latitude, restaurant.longitude):
        raise BusinessRuleViolation("This restaurant doesn't deliver to the selected address")

    listing_ids = [uuid.UUID(str(i["listing_id"])) for i in items]
    rows = await session.execute(select(Listing).where(Listing.id.in_(listing_ids)))
    listings = {l.id: l for l in rows.scalars().all()}

    lines = []
    subtotal = Decimal("0")
    for item in items:
        listing = listings.get(uuid.UUID(str(item["listing_id"])))
        if listing is None or listing.restaurant_id != restaurant.id:
            raise ValidationFailed(f"Item {item['listing_id']} is not on this restaurant's menu")
        if not listing.in_stock:
            raise BusinessRuleViolation(f"{listing.name} is out of stock")
        subtotal += listing.discounted_price * item["quantity"]
        lines.append({
            "listing_id": str(listing.id),
            "quantity": item["quantity"],
            "name": listing.name,
            "unit_price": str(listing.discounted_price),
        })

    delivery_fee = config.delivery_charge if subtotal < Decimal(str(restaurant.free_delivery_mov)) else Decimal("0")
    return Quote(restaurant, lines, subtotal, delivery_fee, config.platform_fee)


def _check_amount(quote: Quote, amount: Decimal) -> None:
    if abs(quote.total - amount) > AMOUNT_TOLERANCE:
        raise ValidationFailed(
            "Order total has changed, please review your cart",
            expected=str(quote.total), received=str(amount),
        )


async def _ticket_taken(session: AsyncSession, ticket: int) -> bool:
    """Tickets only need to be unique among orders that are still in flight."""
    if await session.scalar(select(LiveOrder.id).where(LiveOrder.ticket_number == ticket)) is not None:
        return True
    awaiting = select(DraftOrder.id).where(
        DraftOrder.ticket_number == ticket, DraftOrder.status == DraftStatus.AWAITING_PAYMENT,
    )
    return await session.scalar(awaiting.limit(1)) is not None


async def _unused_ticket(session: AsyncSession) -> int:
    for _ in range(10):
        ticket = generate_ticket_number()
        if not await _ticket_taken(session, ticket):
            return ticket
    raise Conflict("Could not allocate a ticket number, please retry")


# ── COD ────────────────────────────────────────────────────

async def place_cod_order(
    session: AsyncSession,
    customer_id: uuid.UUID,
    restaurant_id: uuid.UUID,
    items: list[dict],
    location_index: int,
    amount,
    config: ConfigSnapshot,
) -> LiveOrder:
    amount = validate_checkout(items, location_index, amount)
    if is_after_cutoff(config.cod_cutoff):
        raise BusinessRuleViolation(f"Cash on delivery is unavailable after {config.cod_cutoff}")
    if not config.min_cod_value <= amount <= config.max_cod_value:
        raise BusinessRuleViolation(
            f"Cash on delivery is available for orders between ₹{config.min_cod_value} and ₹{config.max_cod_value}"
        )

    customer, address = await _delivery_address(session, customer_id, location_index)
    quote = await build_quote(session, restaurant_id, items, address, config)
    if not quote.restaurant.is_cod_available:
        raise BusinessRuleViolation("This restaurant does not accept cash on delivery")
    _check_amount(quote, amount)

    payment = PaymentLog(
        transaction_id=generate_transaction_id(),
        customer_id=customer.id,
        restaurant_id=quote.restaurant.id,
        mode=PaymentMode.COD,
        status=PaymentStatus.NOT_COLLECTED,
        amount=quote.total,
    )
    session.add(payment)
    await session.flush()

    order = LiveOrder(
        id=uuid.uuid4(),
        ticket_number=await _unused_ticket(session),
        otp=generate_otp(),
        customer_id=customer.id,
        restaurant_id=quote.restaurant.id,
        items=quote.lines,
        total_price=quote.total,
        payment_id=payment.id,
        mode=PaymentMode.COD,
        location_index=location_index,
        status=OrderStatus.PENDING,
    )
    session.add(order)
    record_event(
        session, EventType.ORDER_CREATED,
        order_id=order.id, ticket_number=order.ticket_number,
        to_status=OrderStatus.PENDING,
        actor_type="CUSTOMER", actor_id=customer.id,
        payload={"mode": PaymentMode.COD.value, "restaurant_id": str(quote.restaurant.id)},
    )
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.warning("COD order insert conflicted: %s", e)
        raise Conflict("Order could not be placed, please retry")

    logger.info("COD order #%s placed: customer=%s total=%s", order.ticket_number, customer.id, quote.total)
    return order


# ── Online ─────────────────────────────────────────────────

async def initiate_online_payment(
    session: AsyncSession,
    customer_id: uuid.UUID,
    restaurant_id: uuid.UUID,
    items: list[dict],
    location_index: int,
    amount,
    config: ConfigSnapshot,
) -> dict:
    amount = validate_checkout(items, location_index, amount)

    customer, address = await _delivery_address(session, customer_id, location_index)
    quote = await build_quote(session, restaurant_id, items, address, config)
    _check_amount(quote, amount)
    # Close the read transaction before the network call
    await session.commit()

    merchant_order_id = generate_merchant_order_id()
    gateway_order = await payment_gateway.create_order(merchant_order_id, quote.total)

    payment = PaymentLog(
        transaction_id=generate_transaction_id(),
        merchant_order_id=merchant_order_id,
        gateway_order_id=gateway_order.order_id,
        gateway_state=gateway_order.state,
        customer_id=customer.id,
        restaurant_id=quote.restaurant.id,
        mode=PaymentMode.ONLINE,
        status=PaymentStatus.PENDING,
        amount=quote.total,
    )
    session.add(payment)
    await session.flush()

    draft = DraftOrder(
        ticket_number=await _unused_ticket(session),
        otp=generate_otp(),
        customer_id=customer.id,
        restaurant_id=quote.restaurant.id,
        items=quote.lines,
        total_price=quote.total,
        payment_id=payment.id,
        location_index=location_index,
        status=DraftStatus.AWAITING_PAYMENT,
        expires_at=utcnow() + timedelta(hours=settings.DRAFT_TTL_HOURS),
    )
    session.add(draft)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.warning("Draft creation conflicted for %s: %s", merchant_order_id, e)
        raise Conflict("A payment for this checkout already exists")

    logger.info("Online payment initiated: %s draft=%s total=%s", merchant_order_id, draft.id, quote.total)
    return {
        "payment_id": payment.id,
        "draft_id": draft.id,
        "transaction_id": payment.transaction_id,
        "merchant_order_id": merchant_order_id,
        "gateway_order_id": gateway_order.order_id,
        "token": gateway_order.token,
        "amount": quote.total,
        "environment": settings.PAYMENT_ENVIRONMENT,
    }


async def _find_payment(session: AsyncSession, merchant_order_id: str | None, gateway_order_id: str | None):
    clauses = []
    if merchant_order_id:
        clauses.append(PaymentLog.merchant_order_id == merchant_order_id)
    if gateway_order_id:
        clauses.append(PaymentLog.gateway_order_id == gateway_order_id)
    if not clauses:
        return None
    return await session.scalar(select(PaymentLog).where(or_(*clauses)).limit(1))


async def _existing_order_id(session: AsyncSession, payment_id: uuid.UUID) -> uuid.UUID | None:
    live_id = await session.scalar(select(LiveOrder.id).where(LiveOrder.payment_id == payment_id))
    if live_id is not None:
        return live_id
    return await session.scalar(select(PastOrder.id).where(PastOrder.payment_id == payment_id))


async def apply_gateway_state(
    session: AsyncSession,
    merchant_order_id: str | None,
    gateway_order_id: str | None,
    state: str,
    amount_paise: int | None = None,
) -> str:
    """
    Apply a definitive gateway outcome to a payment. Safe to replay.

    Returns a short outcome label for logging: DUPLICATE, RECORDED, FAILED,
    ALREADY_PROMOTED, NOT_CLAIMABLE or PROMOTED.
    """
    gateway_state = str(state or "").upper()
    mapped = payment_gateway.map_gateway_state(gateway_state)

    payment = await _find_payment(session, merchant_order_id, gateway_order_id)
    if payment is None:
        raise NotFound("Transaction not found", merchant_order_id=merchant_order_id)
    payment_id = payment.id

    if payment.status in (PaymentStatus.SUCCESS, PaymentStatus.FAILURE) and payment.gateway_state == gateway_state:
        await session.commit()
        return "DUPLICATE"

    if mapped == PaymentStatus.PENDING:
        payment.gateway_state = gateway_state
        await session.commit()
        return "RECORDED"

    if mapped == PaymentStatus.FAILURE:
        # Never downgrade a confirmed payment
        await session.execute(
            update(PaymentLog)
            .where(PaymentLog.id == payment_id, PaymentLog.status == PaymentStatus.PENDING)
            .values(status=PaymentStatus.FAILURE, gateway_state=gateway_state)
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            update(DraftOrder)
            .where(DraftOrder.payment_id == payment_id, DraftOrder.status == DraftStatus.AWAITING_PAYMENT)
            .values(status=DraftStatus.FAILED)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        logger.info("Payment %s failed at gateway (%s)", payment_id, gateway_state)
        return "FAILED"

    # SUCCESS
    success_values = {"status": PaymentStatus.SUCCESS, "gateway_state": gateway_state}
    if gateway_order_id:
        success_values["gateway_order_id"] = gateway_order_id

    if await _existing_order_id(session, payment_id) is not None:
        await _mark_payment(session, payment_id, success_values)
        await session.commit()
        return "ALREADY_PROMOTED"

    claimed = await session.execute(
        update(DraftOrder)
        .where(
            DraftOrder.payment_id == payment_id,
            DraftOrder.status == DraftStatus.AWAITING_PAYMENT,
            DraftOrder.expires_at > utcnow(),
        )
        .values(status=DraftStatus.CREATING_ORDER)
        .returning(DraftOrder.id)
        .execution_options(synchronize_session=False)
    )
    draft_id = claimed.scalar_one_or_none()
    if draft_id is None:
        draft = await session.scalar(select(DraftOrder).where(DraftOrder.payment_id == payment_id))
        promoted = await _existing_order_id(session, payment_id) is not None
        await _mark_payment(session, payment_id, success_values)
        await session.commit()
        if promoted:
            # Lost the draft to a concurrent delivery that has since committed
            return "ALREADY_PROMOTED"
        logger.error(
            "Captured payment %s has no claimable draft (draft status=%s)",
            payment_id, draft.status.value if draft else None,
        )
        await notify_admin(
            f"Payment {merchant_order_id or gateway_order_id} succeeded but its draft is "
            f"{draft.status.value if draft else 'missing'}. Refund or create the order manually."
        )
        return "NOT_CLAIMABLE"

    if amount_paise is not None and int(amount_paise) != payment_gateway.to_paise(payment.amount):
        logger.warning(
            "Gateway amount mismatch for payment %s: got %s paise, expected %s",
            payment_id, amount_paise, payment_gateway.to_paise(payment.amount),
        )

    draft = await session.get(DraftOrder, draft_id, populate_existing=True)
    ticket = draft.ticket_number
    if await _ticket_taken(session, ticket):
        ticket = await _unused_ticket(session)
        draft.ticket_number = ticket
    order = LiveOrder(
        id=draft.id,
        ticket_number=ticket,
        otp=draft.otp,
        customer_id=draft.customer_id,
        restaurant_id=draft.restaurant_id,
        items=draft.items,
        total_price=draft.total_price,
        payment_id=payment_id,
        mode=PaymentMode.ONLINE,
        location_index=draft.location_index,
        status=OrderStatus.PENDING,
    )
    session.add(order)
    # The draft stops existing once the live order does
    await session.delete(draft)
    await _mark_payment(session, payment_id, success_values)
    record_event(
        session, EventType.ORDER_CREATED,
        order_id=order.id, ticket_number=order.ticket_number,
        to_status=OrderStatus.PENDING,
        actor_type="SYSTEM",
        payload={
            "mode": PaymentMode.ONLINE.value,
            "restaurant_id": str(draft.restaurant_id),
            "customer_id": str(draft.customer_id),
            "notify_customer": True,
        },
    )
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        if await _existing_order_id(session, payment_id) is not None:
            # A concurrent delivery of the same event promoted it first
            return "ALREADY_PROMOTED"
        raise

    logger.info("Draft %s promoted to live order #%s", draft_id, order.ticket_number)
    return "PROMOTED"


async def _mark_payment(session: AsyncSession, payment_id: uuid.UUID, values: dict) -> None:
    await session.execute(
        update(PaymentLog)
        .where(PaymentLog.id == payment_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def handle_gateway_webhook(session: AsyncSession, authorization: str | None, body: dict) -> str:
    if not payment_gateway.verify_webhook_auth(authorization):
        logger.warning("Gateway webhook rejected: bad credentials")
        raise Unauthorized("Unauthorized")

    event = str((body or {}).get("event") or "").strip()
    if event != WEBHOOK_EVENT:
        return "IGNORED"

    payload = body.get("payload") or {}
    merchant_order_id = payload.get("merchantOrderId")
    gateway_order_id = payload.get("orderId")
    if not merchant_order_id or not gateway_order_id:
        logger.error("Gateway webhook missing identifiers: %s", payload)
        raise ValidationFailed("Missing identifiers")

    outcome = await apply_gateway_state(
        session, merchant_order_id, gateway_order_id, payload.get("state"), payload.get("amount"),
    )
    logger.info("Gateway webhook %s -> %s", merchant_order_id, outcome)
    return outcome


async def payment_confirm(session: AsyncSession, payment_id: uuid.UUID, customer_id: uuid.UUID | None = None) -> dict:
    """Client poll: PENDING until a live order exists, then SUCCESS with its id."""
    payment = await session.get(PaymentLog, payment_id, populate_existing=True)
    if payment is None or (customer_id is not None and payment.customer_id != customer_id):
        raise NotFound("Payment not found", payment_id=str(payment_id))

    order_id = await _existing_order_id(session, payment_id)
    if order_id is not None:
        return {"status": "SUCCESS", "order_id": order_id}
    if payment.status == PaymentStatus.FAILURE:
        return {"status": "FAILED", "order_id": None}
    draft_status = await session.scalar(select(DraftOrder.status).where(DraftOrder.payment_id == payment_id))
    if draft_status in (DraftStatus.FAILED, DraftStatus.CANCELLED):
        return {"status": "FAILED", "order_id": None}
    return {"status": "PENDING", "order_id": None}


# ── Background maintenance ─────────────────────────────────

async def sweep_expired_drafts(session: AsyncSession) -> int:
    """Delete drafts past their TTL and fail the payments that were waiting on them."""
    now = utcnow()
    expired = await session.execute(
        delete(DraftOrder)
        .where(DraftOrder.expires_at <= now)
        .returning(DraftOrder.payment_id)
        .execution_options(synchronize_session=False)
    )
    payment_ids = list(expired.scalars().all())
    if payment_ids:
        await session.execute(
            update(PaymentLog)
            .where(PaymentLog.id.in_(payment_ids), PaymentLog.status == PaymentStatus.PENDING)
            .values(status=PaymentStatus.FAILURE, gateway_state="EXPIRED")
            .execution_options(synchronize_session=False)
        )
    await session.commit()
    if payment_ids:
        logger.info("Swept %d expired drafts", len(payment_ids))
    return len(payment_ids)


async def reconcile_pending_payments(
    session_factory: async_sessionmaker,
    stale_after: timedelta = timedelta(minutes=10),
) -> int:
    """Ask the gateway about online payments whose webhook never arrived."""
    async with session_factory() as session:
        rows = await session.execute(
            select(PaymentLog.merchant_order_id, PaymentLog.gateway_order_id)
            .where(
                PaymentLog.mode == PaymentMode.ONLINE,
                PaymentLog.status == PaymentStatus.PENDING,
                PaymentLog.merchant_order_id.is_not(None),
                PaymentLog.created_at < utcnow() - stale_after,
            )
            .limit(100)
        )
        pending = rows.all()

    resolved = 0
    for merchant_order_id, gateway_order_id in pending:
        try:
            status = await payment_gateway.order_status(merchant_order_id)
        except Exception as e:
            logger.warning("Status check failed for %s: %s", merchant_order_id, e)
            continue
        if payment_gateway.map_gateway_state(status.state) == PaymentStatus.PENDING:
            continue
        async with session_factory() as session:
            try:
                outcome = await apply_gateway_state(
                    session, merchant_order_id, status.order_id or gateway_order_id, status.state, status.amount,
                )
            except Exception:
                logger.exception("Reconciling %s failed", merchant_order_id)
                continue
        logger.info("Reconciled %s -> %s", merchant_order_id, outcome)
        resolved += 1
    return resolved
