"""
Transactional outbox — "order reached state X" events.

record_event() adds the row to the caller's session so it commits (or rolls
back) together with the transition that produced it. The worker in
services.outbox_worker drains committed rows afterwards. A worker leases a row
before handling it so two workers never run the same event at once.
"""

import uuid
from datetime import timedelta

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.enums import EventType
from models.order import OrderEvent
from services.clock import utcnow

LEASE = timedelta(seconds=60)


def record_event(
    session: AsyncSession,
    event_type: EventType,
    *,
    order_id: uuid.UUID | None = None,
    ticket_number: int | None = None,
    from_status: str | None = None,
    to_status: str | None = None,
    actor_type: str = "SYSTEM",
    actor_id: uuid.UUID | None = None,
    payload: dict | None = None,
) -> OrderEvent:
    event = OrderEvent(
        order_id=order_id,
        ticket_number=ticket_number,
        event_type=event_type,
        from_status=getattr(from_status, "value", from_status),
        to_status=getattr(to_status, "value", to_status),
        actor_type=actor_type,
        actor_id=actor_id,
        payload=payload or {},
    )
    session.add(event)
    return event


async def pending_event_ids(session: AsyncSession, limit: int = 50) -> list[int]:
    rows = await session.execute(
        select(OrderEvent.id)
        .where(
            OrderEvent.processed_at.is_(None),
            OrderEvent.attempts < settings.OUTBOX_MAX_ATTEMPTS,
            or_(OrderEvent.locked_until.is_(None), OrderEvent.locked_until < utcnow()),
        )
        .order_by(OrderEvent.id)
        .limit(limit)
    )
    ids = list(rows.scalars().all())
    await session.commit()
    return ids


async def claim_event(session: AsyncSession, event_id: int) -> OrderEvent | None:
    """Lease an unprocessed event and bump its attempts. None if another worker holds it."""
    now = utcnow()
    claimed = await session.execute(
        update(OrderEvent)
        .where(
            OrderEvent.id == event_id,
            OrderEvent.processed_at.is_(None),
            OrderEvent.attempts < settings.OUTBOX_MAX_ATTEMPTS,
            or_(OrderEvent.locked_until.is_(None), OrderEvent.locked_until < now),
        )
        .values(attempts=OrderEvent.attempts + 1, locked_until=now + LEASE)
        .returning(OrderEvent.id)
        .execution_options(synchronize_session=False)
    )
    if claimed.scalar_one_or_none() is None:
        await session.rollback()
        return None
    event = await session.get(OrderEvent, event_id, populate_existing=True)
    await session.commit()
    return event


async def mark_processed(session: AsyncSession, event_id: int) -> None:
    await session.execute(
        update(OrderEvent)
        .where(OrderEvent.id == event_id)
        .values(processed_at=utcnow(), locked_until=None, last_error=None)
        .execution_options(synchronize_session=False)
    )
    await session.commit()


async def mark_failed(session: AsyncSession, event_id: int, error: str) -> None:
    await session.execute(
        update(OrderEvent)
        .where(OrderEvent.id == event_id)
        .values(last_error=error[:2000], locked_until=None)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
