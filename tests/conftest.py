"""
Shared fixtures: a file-backed SQLite database per test and a small seeded world.

SQLite gets BEGIN IMMEDIATE on every transaction so concurrent sessions queue
on the write lock the way row locks serialize them on Postgres.
"""

import os
import sys
from decimal import Decimal
from unittest.mock import patch

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RUN_BACKGROUND_WORKERS", "false")
os.environ.setdefault("PAYMENT_WEBHOOK_USER", "gateway")
os.environ.setdefault("PAYMENT_WEBHOOK_PASS", "s3cret")
os.environ.setdefault("TIMEZONE", "Asia/Kolkata")
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from db.database import init_models
from models.admin import Admin
from models.customer import Customer
from models.order import LiveOrder
from models.restaurant import Restaurant, Listing
from models.rider import Rider
from services import order_machine
from services.app_config import snapshot_from_settings
from services.payments import place_cod_order

# Inside the "Vallabh Vidyanagar" service area
CUSTOMER_LAT, CUSTOMER_LNG = 22.555, 72.93
RESTAURANT_LAT, RESTAURANT_LNG = 22.5565, 72.9325


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _no_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    await init_models(bind=engine)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest.fixture
def config():
    return snapshot_from_settings()


@pytest.fixture
async def world(session_factory):
    """One customer, one restaurant with a ₹110 dish, two on-duty riders and an admin."""
    async with session_factory() as s:
        customer = Customer(
            name="Asha",
            phone="9000000001",
            email="asha@example.com",
            fcm_tokens=["cust-token"],
            addresses=[{
                "title": "Home",
                "latitude": CUSTOMER_LAT,
                "longitude": CUSTOMER_LNG,
                "house_no": "12",
                "building_no": "B",
                "landmark": "Near the park",
                "is_default": True,
            }],
        )
        restaurant = Restaurant(
            name="Spice Hub",
            owner_name="Ravi",
            phone="9000000002",
            fcm_tokens=["rest-token"],
            latitude=RESTAURANT_LAT,
            longitude=RESTAURANT_LNG,
            address="Station Road",
            is_serving=True,
            is_cod_available=True,
            free_delivery_mov=Decimal("300"),
        )
        s.add_all([customer, restaurant])
        await s.flush()
        listing = Listing(
            restaurant_id=restaurant.id,
            name="Paneer Tikka",
            original_price=Decimal("130"),
            discounted_price=Decimal("110"),
            in_stock=True,
            category="Starters",
        )
        rider_a = Rider(name="Kiran", phone="9000000003", email="kiran@example.com", on_duty=True)
        rider_b = Rider(name="Meera", phone="9000000004", email="meera@example.com", on_duty=True)
        admin = Admin(name="Ops", email="ops@example.com")
        s.add_all([listing, rider_a, rider_b, admin])
        await s.commit()
        return {
            "customer_id": customer.id,
            "restaurant_id": restaurant.id,
            "listing_id": listing.id,
            "rider_a": rider_a.id,
            "rider_b": rider_b.id,
            "admin_id": admin.id,
        }


def cart(world, quantity: int = 2) -> list[dict]:
    return [{"listing_id": str(world["listing_id"]), "quantity": quantity}]


async def call(factory, fn, *args, **kwargs):
    """Run one service call in its own session, like one request would."""
    async with factory() as s:
        return await fn(s, *args, **kwargs)


async def place_cod(factory, world, config, quantity: int = 2, amount=None):
    """COD order for `quantity` dishes; the daily cutoff is patched out."""
    total = Decimal("110") * quantity
    if amount is None:
        amount = total + (config.delivery_charge if total < Decimal("300") else 0)
    with patch("services.payments.is_after_cutoff", return_value=False):
        return await call(
            factory, place_cod_order, world["customer_id"], world["restaurant_id"],
            cart(world, quantity), 0, amount, config,
        )


async def ready_order(factory, world, config, kitchen: str = "READY"):
    """COD order accepted by the restaurant with the kitchen at `kitchen`. Returns its id."""
    order = await place_cod(factory, world, config)
    await call(factory, order_machine.accept_order, world["restaurant_id"], order.id, 20)
    await call(factory, order_machine.mark_almost_ready, world["restaurant_id"], order.id)
    if kitchen == "READY":
        await call(factory, order_machine.mark_ready, world["restaurant_id"], order.id)
    return order.id


async def deliver(factory, world, order_id, rider_key: str = "rider_a"):
    """Claim, pick up, reach drop and complete with the customer's OTP."""
    rider_id = world[rider_key]
    await call(factory, order_machine.claim_order, rider_id, order_id)
    await call(factory, order_machine.order_picked_up, rider_id, order_id)
    await call(factory, order_machine.order_reached_drop, rider_id, order_id)
    async with factory() as s:
        otp = (await s.get(LiveOrder, order_id)).otp
    return await call(factory, order_machine.complete_order, rider_id, order_id, str(otp))
