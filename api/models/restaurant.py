"""Restaurant (hotel) and menu Listing ORM models."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Text, Numeric, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from db.database import Base
from services.clock import utcnow


class Restaurant(Base):
    __tablename__ = "restaurants"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_name: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    fcm_tokens: Mapped[list] = mapped_column(JSON, default=list)

    latitude: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    longitude: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    address: Mapped[str | None] = mapped_column(Text)

    is_serving: Mapped[bool] = mapped_column(Boolean, default=False)
    is_cod_available: Mapped[bool] = mapped_column(Boolean, default=False)
    free_delivery_mov: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("300"))

    # {"monday": {"open": "11:00", "close": "22:30"}, ...} in local wall-clock time
    auto_schedule_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    weekly_schedule: Mapped[dict] = mapped_column(JSON, default=dict)

    # Per-restaurant payout terms; NULL falls back to the configured defaults
    commission_rate: Mapped[float | None] = mapped_column(Numeric(4, 3, asdecimal=False))
    gst_rate: Mapped[float | None] = mapped_column(Numeric(4, 3, asdecimal=False))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    restaurant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("restaurants.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    original_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    discounted_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    in_stock: Mapped[bool] = mapped_column(Boolean, default=True)
    category: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
