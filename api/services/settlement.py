"""
Weekly restaurant settlement batch.

A settlement week runs Thursday 00:00 to Wednesday 23:59:59 in the business
timezone. Whatever day the batch runs, it settles the last complete week.
Each restaurant is computed and committed in its own transaction, so one
failing restaurant is alerted on and skipped without touching the others.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models.enums import PastOrderStatus, SettlementStatus
from models.order import PastOrder
from models.restaurant import Restaurant
from models.settlement import RestaurantSettlement
from services.clock import local_tz, now_local, utcnow
from services.errors import NotFound, Conflict, ValidationFailed
from services.notifications import notify_admin

logger = logging.getLogger(__name__)

DEFAULT_REMARK = "Payment will be processed by the upcoming Sunday."
THURSDAY = 3
CENT = Decimal("0.01")


@dataclass
class SettlementAmounts:
    total_orders: int
    gross_revenue: Decimal
    commission_amount: Decimal
    tax_on_commission: Decimal
    net_revenue: Decimal


@dataclass
class BatchReport:
    week_start: datetime
    week_end: datetime
    created: list[uuid.UUID] = field(default_factory=list)
    skipped_existing: int = 0
    skipped_empty: int = 0
    failed: list[uuid.UUID] = field(default_factory=list)


def settlement_window(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Last complete Thursday-Wednesday week, returned as aware UTC datetimes."""
    local = now_local(now)
    days_since_thursday = (local.weekday() - THURSDAY) % 7
    this_thursday = datetime(local.year, local.month, local.day, tzinfo=local_tz()) - timedelta(days=days_since_thursday)
    week_start = this_thursday - timedelta(days=7)
    week_end = this_thursday - timedelta(seconds=1)
    return week_start.astimezone(timezone.utc), week_end.astimezone(timezone.utc)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_amounts(orders: list[PastOrder], commission_rate, gst_rate) -> SettlementAmounts:
    gross = Decimal("0")
    for order in orders:
        for item in order.items:
            gross += Decimal(str(item["price"])) * int(item["quantity"])
    commission = gross * Decimal(str(commission_rate))
    tax = commission * Decimal(str(gst_rate))
    net = gross - commission - tax
    return SettlementAmounts(
        total_orders=len(orders),
        gross_revenue=_money(gross),
        commission_amount=_money(commission),
        tax_on_commission=_money(tax),
        net_revenue=_money(net),
    )


async def already_settled(session: AsyncSession, hotel_id: uuid.UUID, week_start: datetime, week_end: datetime) -> bool:
    existing = await session.scalar(
        select(RestaurantSettlement.id).where(
            RestaurantSettlement.hotel_id == hotel_id,
            RestaurantSettlement.week_start == week_start,
            RestaurantSettlement.week_end == week_end,
        )
    )
    return existing is not None


async def settle_restaurant(
    session: AsyncSession,
    restaurant: Restaurant,
    week_start: datetime,
    week_end: datetime,
) -> RestaurantSettlement | None:
    """Create one restaurant's settlement for the week. None when it had no delivered orders."""
    rows = await session.execute(
        select(PastOrder).where(
            PastOrder.restaurant_id == restaurant.id,
            PastOrder.status == PastOrderStatus.DELIVERED,
            PastOrder.ordered_at >= week_start,
            PastOrder.ordered_at < week_end + timedelta(seconds=1),
        )
    )
    orders = list(rows.scalars().all())
    if not orders:
        return None

    commission_rate = restaurant.commission_rate if restaurant.commission_rate is not None else settings.COMMISSION_RATE
    gst_rate = restaurant.gst_rate if restaurant.gst_rate is not None else settings.GST_RATE
    amounts = compute_amounts(orders, commission_rate, gst_rate)

    settlement = RestaurantSettlement(
        hotel_id=restaurant.id,
        week_start=week_start,
        week_end=week_end,
        total_orders=amounts.total_orders,
        gross_revenue=amounts.gross_revenue,
        commission_rate=Decimal(str(commission_rate)),
        commission_amount=amounts.commission_amount,
        tax_rate=Decimal(str(gst_rate)),
        tax_on_commission=amounts.tax_on_commission,
        net_revenue=amounts.net_revenue,
        status=SettlementStatus.PENDING,
        remarks=DEFAULT_REMARK,
    )
    session.add(settlement)
    await session.commit()
    return settlement


async def generate_weekly_settlements(
    session_factory: async_sessionmaker,
    now: datetime | None = None,
) -> BatchReport:
    week_start, week_end = settlement_window(now)
    report = BatchReport(week_start=week_start, week_end=week_end)

    async with session_factory() as session:
        restaurants = list((await session.execute(select(Restaurant).order_by(Restaurant.name))).scalars().all())

    for restaurant in restaurants:
        async with session_factory() as session:
            try:
                if await already_settled(session, restaurant.id, week_start, week_end):
                    report.skipped_existing += 1
                    continue
                created = await settle_restaurant(session, restaurant, week_start, week_end)
            except IntegrityError:
                # Another run inserted the same (hotel, week) first
                await session.rollback()
                report.skipped_existing += 1
                continue
            except Exception as e:
                await session.rollback()
                logger.exception("Settlement failed for restaurant %s", restaurant.id)
                report.failed.append(restaurant.id)
                await notify_admin(
                    f"❌ Weekly settlement failed for {restaurant.name} ({restaurant.id})\n"
                    f"Week: {week_start:%d %b} – {week_end:%d %b %Y}\nError: {e}"
                )
                continue
        if created is None:
            report.skipped_empty += 1
        else:
            report.created.append(created.id)

    logger.info(
        "Weekly settlements %s – %s: created=%d skipped=%d failed=%d",
        week_start.date(), week_end.date(), len(report.created),
        report.skipped_existing + report.skipped_empty, len(report.failed),
    )
    return report


async def list_settlements(
    session: AsyncSession,
    status: SettlementStatus | None = None,
    hotel_id: uuid.UUID | None = None,
    limit: int = 100,
) -> list[RestaurantSettlement]:
    query = select(RestaurantSettlement).order_by(RestaurantSettlement.week_start.desc()).limit(limit)
    if status is not None:
        query = query.where(RestaurantSettlement.status == status)
    if hotel_id is not None:
        query = query.where(RestaurantSettlement.hotel_id == hotel_id)
    return list((await session.execute(query)).scalars().all())


async def mark_settlement_paid(
    session: AsyncSession,
    settlement_id: uuid.UUID,
    admin_id: uuid.UUID,
    proof_url: str,
    payment_mode: str | None = None,
    remarks: str | None = None,
) -> RestaurantSettlement:
    """PENDING -> PAID. Re-checks PENDING in the UPDATE so two admins can't both pay."""
    if not proof_url:
        raise ValidationFailed("Payment proof is required")

    values = {
        "status": SettlementStatus.PAID,
        "proof_url": proof_url,
        "payment_mode": payment_mode,
        "paid_at": utcnow(),
        "paid_by": admin_id,
    }
    if remarks:
        values["remarks"] = remarks
    paid = await session.execute(
        update(RestaurantSettlement)
        .where(RestaurantSettlement.id == settlement_id, RestaurantSettlement.status == SettlementStatus.PENDING)
        .values(**values)
        .returning(RestaurantSettlement.id)
        .execution_options(synchronize_session=False)
    )
    if paid.scalar_one_or_none() is None:
        await session.rollback()
        current = await session.get(RestaurantSettlement, settlement_id)
        if current is None:
            raise NotFound("Settlement not found", settlement_id=str(settlement_id))
        raise Conflict("Settlement is already PAID")
    await session.commit()
    logger.info("Settlement %s marked PAID by admin %s", settlement_id, admin_id)
    return await session.get(RestaurantSettlement, settlement_id, populate_existing=True)
