"""
Per-request configuration snapshot.

Business knobs come from settings; the alert banner and per-app version gates
come from the database. A snapshot is built once per request and handed to the
services that need it, so nothing reads a process-wide mutable alert.
"""

import logging
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.app_config import AppAlert, AppVersion
from models.enums import AlertType, AppId

logger = logging.getLogger(__name__)


class AlertInfo(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    title: str
    message: str
    image_url: str | None = None
    button_text: str | None = None
    button_link: str | None = None
    is_skippable: bool = True
    type: AlertType = AlertType.INFO


class VersionGate(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    min_version: int
    max_version: int
    link: str | None = None

    @model_validator(mode="after")
    def check_range(self):
        if self.min_version > self.max_version:
            raise ValueError("min_version cannot exceed max_version")
        return self


class ConfigSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    aov: Decimal
    delivery_charge: Decimal
    platform_fee: Decimal
    min_cod_value: Decimal
    max_cod_value: Decimal
    cod_cutoff: str
    commission_rate: float
    gst_rate: float
    support_contact: str | None = None
    alert: AlertInfo | None = None
    versions: dict[AppId, VersionGate] = {}

    def public_config(self) -> dict:
        return {
            "AOV": self.aov,
            "delivery_charge": self.delivery_charge,
            "min_cod_value": self.min_cod_value,
            "max_cod_value": self.max_cod_value,
            "platform_fee": self.platform_fee,
            "cod_cutoff": self.cod_cutoff,
        }


def snapshot_from_settings(alert: AlertInfo | None = None, versions: dict | None = None) -> ConfigSnapshot:
    return ConfigSnapshot(
        aov=Decimal(str(settings.AOV)),
        delivery_charge=Decimal(str(settings.DELIVERY_CHARGE)),
        platform_fee=Decimal(str(settings.PLATFORM_FEE)),
        min_cod_value=Decimal(str(settings.MIN_COD_VALUE)),
        max_cod_value=Decimal(str(settings.MAX_COD_VALUE)),
        cod_cutoff=settings.COD_CUTOFF,
        commission_rate=settings.COMMISSION_RATE,
        gst_rate=settings.GST_RATE,
        support_contact=settings.SUPPORT_CONTACT or None,
        alert=alert,
        versions=versions or {},
    )


async def load_config_snapshot(session: AsyncSession) -> ConfigSnapshot:
    alert_row = await session.scalar(
        select(AppAlert).where(AppAlert.is_active.is_(True)).order_by(AppAlert.id.desc()).limit(1)
    )
    version_rows = (await session.execute(select(AppVersion))).scalars().all()

    versions = {}
    for row in version_rows:
        try:
            versions[row.app] = VersionGate.model_validate(row)
        except ValueError as e:
            logger.error("Ignoring invalid version gate for %s: %s", row.app, e)

    alert = AlertInfo.model_validate(alert_row) if alert_row else None
    return snapshot_from_settings(alert=alert, versions=versions)


def check_alert(snapshot: ConfigSnapshot, app: AppId, version_code: int | None) -> dict:
    """Version gate for the calling app plus the active banner, if any."""
    gate = snapshot.versions.get(app)
    update = "NONE"
    if gate is not None and version_code is not None:
        if version_code < gate.min_version:
            update = "FORCE"
        elif version_code < gate.max_version:
            update = "OPTIONAL"

    return {
        "app": app,
        "update": update,
        "link": gate.link if gate else None,
        "min_version": gate.min_version if gate else None,
        "max_version": gate.max_version if gate else None,
        "alert": snapshot.alert.model_dump() if snapshot.alert else None,
    }
