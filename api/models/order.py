"""Order ORM models: Draft, Live and Past representations plus the OrderEvent outbox.

One conceptual order moves Draft -> Live -> Past. The three rows share the same
primary key (the Live row reuses the Draft id, the Past row reuses the Live id),
and every promotion is one-way.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Integer, Numeric, DateTime, ForeignKey, Text, JSON,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from db.database import Base
from models.enums import (
    DraftStatus, OrderStatus, RestaurantStatus, PastOrderStatus, PaymentMode, EventType,
)
from services.clock import utcnow


class DraftOrder(Base):
    """Pre-confirmation intent for an online payment. Never visible to restaurants or riders."""

    __tablename__ = "draft_orders"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    ticket_number: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    otp: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("customers.id"), nullable=False)
    restaurant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("restaurants.id"), nullable=False)
    items: Mapped[list] = mapped_column(JSON, nullable=False)  # [{listing_id, quantity}]
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("payment_logs.id"), unique=True, nullable=False)
    location_index: Mapped[int] = mapped_column(Integer, default=0)
    mode: Mapped[PaymentMode] = mapped_column(
        SAEnum(PaymentMode, name="payment_mode", native_enum=False), default=PaymentMode.ONLINE,
    )
    status: Mapped[DraftStatus] = mapped_column(
        SAEnum(DraftStatus, name="draft_status", native_enum=False),
        default=DraftStatus.AWAITING_PAYMENT,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class LiveOrder(Base):
    """An in-flight order. The rider_id column is the claim target."""

    __tablename__ = "live_orders"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    ticket_number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    otp: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("customers.id"), nullable=False, index=True)
    restaurant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("restaurants.id"), nullable=False, index=True)
    items: Mapped[list] = mapped_column(JSON, nullable=False)  # [{listing_id, quantity}]
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("payment_logs.id"), unique=True, nullable=False)
    mode: Mapped[PaymentMode] = mapped_column(
        SAEnum(PaymentMode, name="payment_mode", native_enum=False), nullable=False,
    )
    location_index: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(OrderStatus, name="order_status", native_enum=False),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True,
    )
    restaurant_status: Mapped[RestaurantStatus] = mapped_column(
        SAEnum(RestaurantStatus, name="restaurant_status", native_enum=False),
        default=RestaurantStatus.PREPARING,
        nullable=False,
    )
    rider_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("riders.id"), index=True)
    rider_metadata_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("rider_metadata.id"))
    preparation_time: Mapped[int | None] = mapped_column(Integer)  # minutes

    ordered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    served_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    arrived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class PastOrder(Base):
    """Terminal, denormalized snapshot. Rows are written once and never updated."""

    __tablename__ = "past_orders"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    # Tickets are recycled once an order leaves the live set
    ticket_number: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("customers.id"), nullable=False, index=True)
    restaurant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("restaurants.id"), nullable=False, index=True)
    rider_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("riders.id"), index=True)
    rider_metadata_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("rider_metadata.id"))
    payment_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("payment_logs.id"), unique=True, nullable=False)
    mode: Mapped[PaymentMode] = mapped_column(
        SAEnum(PaymentMode, name="payment_mode", native_enum=False), nullable=False,
    )

    items: Mapped[list] = mapped_column(JSON, nullable=False)  # [{listing_id, name, price, quantity}]
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    delivery_address: Mapped[dict | None] = mapped_column(JSON)
    status: Mapped[PastOrderStatus] = mapped_column(
        SAEnum(PastOrderStatus, name="past_order_status", native_enum=False), nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(Text)
    preparation_time: Mapped[int | None] = mapped_column(Integer)

    ordered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    served_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    arrived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class OrderEvent(Base):
    """Transactional outbox row. Written with the transition; consumed by the outbox worker."""

    __tablename__ = "order_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID | None] = mapped_column(index=True)
    ticket_number: Mapped[int | None] = mapped_column(Integer)
    event_type: Mapped[EventType] = mapped_column(
        SAEnum(EventType, name="order_event_type", native_enum=False), nullable=False,
    )
    from_status: Mapped[str | None] = mapped_column(String(20))
    to_status: Mapped[str | None] = mapped_column(String(20))
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)  # CUSTOMER, RESTAURANT, RIDER, ADMIN, SYSTEM
    actor_id: Mapped[uuid.UUID | None] = mapped_column()
    payload: Mapped[dict | None] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    last_error: Mapped[str | None] = mapped_column(Text)
