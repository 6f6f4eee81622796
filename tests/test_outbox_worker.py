"""Tests for the outbox lease and the worker that turns events into pushes."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

from unittest.mock import AsyncMock, patch

from sqlalchemy import select

from conftest import call, place_cod
from models.customer import Customer
from models.enums import EventType
from models.order import OrderEvent
from models.restaurant import Restaurant
from services import order_machine
from services.notifications import PushResult
from services.outbox import claim_event, record_event
from services.outbox_worker import dispatch_pending, NEW_ORDER, CUSTOMER_MESSAGES


async def _events(factory):
    async with factory() as s:
        return list((await s.execute(select(OrderEvent).order_by(OrderEvent.id))).scalars().all())


async def test_new_order_pushes_to_restaurant(session_factory, world, config):
    """A new order pushes to the restaurant's devices."""
    await place_cod(session_factory, world, config)
    push = AsyncMock(return_value=PushResult(sent=1))
    with patch("services.outbox_worker.send_push", push):
        assert await dispatch_pending(session_factory) == 1

    push.assert_awaited_once()
    tokens, title, _, data = push.await_args.args
    assert tokens == ["rest-token"]
    assert title == NEW_ORDER[0]
    assert data["type"] == EventType.ORDER_CREATED.value

    (event,) = await _events(session_factory)
    assert event.processed_at is not None
    assert event.attempts == 1


async def test_processed_events_are_not_sent_twice(session_factory, world, config):
    """Processed events are never pushed again."""
    await place_cod(session_factory, world, config)
    push = AsyncMock(return_value=PushResult(sent=1))
    with patch("services.outbox_worker.send_push", push):
        await dispatch_pending(session_factory)
        assert await dispatch_pending(session_factory) == 0
    assert push.await_count == 1


async def test_accepted_order_pushes_to_customer(session_factory, world, config):
    """Acceptance pushes to the customer."""
    order = await place_cod(session_factory, world, config)
    await call(session_factory, order_machine.accept_order, world["restaurant_id"], order.id, 20)

    push = AsyncMock(return_value=PushResult(sent=1))
    with patch("services.outbox_worker.send_push", push):
        assert await dispatch_pending(session_factory) == 2

    titles = [c.args[1] for c in push.await_args_list]
    assert CUSTOMER_MESSAGES[EventType.ORDER_ACCEPTED][0] in titles
    customer_call = next(c for c in push.await_args_list if c.args[0] == ["cust-token"])
    assert customer_call.args[1] == CUSTOMER_MESSAGES[EventType.ORDER_ACCEPTED][0]


async def test_customer_with_notifications_off_is_skipped(session_factory, world, config):
    """Customers who turned notifications off get no push."""
    async with session_factory() as s:
        (await s.get(Customer, world["customer_id"])).notifications_enabled = False
        await s.commit()
    order = await place_cod(session_factory, world, config)
    await call(session_factory, order_machine.accept_order, world["restaurant_id"], order.id, 20)

    push = AsyncMock(return_value=PushResult(sent=1))
    with patch("services.outbox_worker.send_push", push):
        await dispatch_pending(session_factory)
    assert [c.args[0] for c in push.await_args_list] == [["rest-token"]]


async def test_dead_tokens_are_pruned(session_factory, world, config):
    """Tokens the push service reports as dead are removed."""
    async with session_factory() as s:
        (await s.get(Restaurant, world["restaurant_id"])).fcm_tokens = ["rest-token", "stale-token"]
        await s.commit()
    await place_cod(session_factory, world, config)

    push = AsyncMock(return_value=PushResult(sent=1, failed=1, invalid_tokens=["stale-token"]))
    with patch("services.outbox_worker.send_push", push):
        await dispatch_pending(session_factory)

    async with session_factory() as s:
        restaurant = await s.get(Restaurant, world["restaurant_id"])
    assert restaurant.fcm_tokens == ["rest-token"]


async def test_failed_handler_is_retried_then_alerted(session_factory, world, config):
    """A failing handler is retried, then ops are alerted once."""
    await place_cod(session_factory, world, config)

    push = AsyncMock(side_effect=RuntimeError("fcm down"))
    with patch("services.outbox_worker.send_push", push), \
         patch("services.outbox_worker.notify_admin", new_callable=AsyncMock) as alert, \
         patch("config.settings.OUTBOX_MAX_ATTEMPTS", 2):
        assert await dispatch_pending(session_factory) == 0
        (event,) = await _events(session_factory)
        assert event.attempts == 1
        assert event.last_error == "fcm down"
        assert event.processed_at is None
        alert.assert_not_awaited()

        assert await dispatch_pending(session_factory) == 0
        alert.assert_awaited_once()

        # Out of attempts: no longer picked up
        assert await dispatch_pending(session_factory) == 0
    assert push.await_count == 2


async def test_leased_event_cannot_be_claimed_again(session_factory, world):
    """A leased event is invisible to a second worker."""
    async with session_factory() as s:
        event = record_event(s, EventType.ORDER_READY, actor_type="SYSTEM")
        await s.commit()
        event_id = event.id

    first = await call(session_factory, claim_event, event_id)
    second = await call(session_factory, claim_event, event_id)
    assert first is not None
    assert second is None
