"""Customer ORM model."""

import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from db.database import Base
from services.clock import utcnow


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    fcm_tokens: Mapped[list] = mapped_column(JSON, default=list)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    # Saved addresses; orders point at one by position (location_index).
    # Each entry: title, latitude, longitude, house_no, building_no, landmark, is_default
    addresses: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def address_at(self, index: int) -> dict | None:
        addresses = self.addresses or []
        if 0 <= index < len(addresses):
            return addresses[index]
        return None

    def default_address(self) -> dict | None:
        for address in self.addresses or []:
            if address.get("is_default"):
                return address
        return None
