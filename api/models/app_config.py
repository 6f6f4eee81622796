"""Client-facing alert banner and per-app version gates."""

from datetime import datetime

from sqlalchemy import String, Text, Boolean, DateTime, Integer, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from db.database import Base
from models.enums import AlertType, AppId
from services.clock import utcnow


class AppAlert(Base):
    """Single-row table. The newest active row is the one served."""

    __tablename__ = "app_alerts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[str | None] = mapped_column(Text)
    button_text: Mapped[str | None] = mapped_column(String(100))
    button_link: Mapped[str | None] = mapped_column(Text)
    is_skippable: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    type: Mapped[AlertType] = mapped_column(
        SAEnum(AlertType, name="alert_type", native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=AlertType.INFO,
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class AppVersion(Base):
    __tablename__ = "app_versions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    app: Mapped[AppId] = mapped_column(
        SAEnum(AppId, name="app_id", native_enum=False), unique=True, nullable=False,
    )
    min_version: Mapped[int] = mapped_column(Integer, nullable=False)
    max_version: Mapped[int] = mapped_column(Integer, nullable=False)
    link: Mapped[str | None] = mapped_column(Text)
