"""Rider and RiderMetaData ORM models."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, Boolean, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from config import settings
from db.database import Base
from services.clock import utcnow


def _default_deposit() -> Decimal:
    return Decimal(str(settings.RIDER_DEFAULT_DEPOSIT))


class Rider(Base):
    __tablename__ = "riders"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    fcm_tokens: Mapped[list] = mapped_column(JSON, default=list)
    current_lat: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    current_lng: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))

    # Operational flags. The order row is the source of truth for who serves
    # what; is_available / serving_order_id trail it.
    on_duty: Mapped[bool] = mapped_column(Boolean, default=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    serving_order_id: Mapped[uuid.UUID | None] = mapped_column()
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=_default_deposit)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class RiderMetaData(Base):
    """Accept-time telemetry plus one-way delivery milestones for a single order."""

    __tablename__ = "rider_metadata"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    rider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("riders.id"), nullable=False, index=True)
    order_id: Mapped[uuid.UUID] = mapped_column(unique=True, nullable=False)

    accepted_at_lat: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    accepted_at_lng: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    accepted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    restaurant_distance_at_accept: Mapped[float | None] = mapped_column(Numeric(8, 2, asdecimal=False))
    customer_distance_at_accept: Mapped[float | None] = mapped_column(Numeric(8, 2, asdecimal=False))

    selfie_at_restaurant: Mapped[str | None] = mapped_column(Text)
    reached_restaurant_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    pickup_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    drop_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
