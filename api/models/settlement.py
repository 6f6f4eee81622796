"""RestaurantSettlement ORM model — one weekly payout record per restaurant."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Integer, Numeric, DateTime, ForeignKey, Text, UniqueConstraint,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from db.database import Base
from models.enums import SettlementStatus
from services.clock import utcnow


class RestaurantSettlement(Base):
    __tablename__ = "restaurant_settlements"
    __table_args__ = (
        UniqueConstraint("hotel_id", "week_start", "week_end", name="uq_settlement_hotel_week"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    hotel_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("restaurants.id"), nullable=False, index=True)
    week_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    week_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    total_orders: Mapped[int] = mapped_column(Integer, default=0)
    gross_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(4, 3), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(4, 3), nullable=False)
    tax_on_commission: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    net_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[SettlementStatus] = mapped_column(
        SAEnum(SettlementStatus, name="settlement_status", native_enum=False),
        default=SettlementStatus.PENDING,
        nullable=False,
    )
    remarks: Mapped[str | None] = mapped_column(Text)

    # Payout proof, set when an admin marks the settlement PAID
    proof_url: Mapped[str | None] = mapped_column(Text)
    payment_mode: Mapped[str | None] = mapped_column(String(40))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("admins.id"))

    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
