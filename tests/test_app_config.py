"""Tests for the config snapshot, version gates and alert banner."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

from decimal import Decimal

import pytest
from pydantic import ValidationError

from conftest import call
from models.app_config import AppAlert, AppVersion
from models.enums import AlertType, AppId
from services.app_config import (
    AlertInfo, VersionGate, check_alert, load_config_snapshot, snapshot_from_settings,
)

GATES = {AppId.CUSTOMER: VersionGate(min_version=10, max_version=14, link="https://example.com/app")}


@pytest.mark.parametrize("version_code, expected", [
    (9, "FORCE"),
    (10, "OPTIONAL"),
    (13, "OPTIONAL"),
    (14, "NONE"),
    (None, "NONE"),
])
def test_version_gate(version_code, expected):
    """Below min forces an update, inside the range offers one, above it stays quiet."""
    result = check_alert(snapshot_from_settings(versions=GATES), AppId.CUSTOMER, version_code)
    assert result["update"] == expected


def test_app_without_gate_never_updates():
    """Apps without a configured gate get NONE."""
    result = check_alert(snapshot_from_settings(versions=GATES), AppId.RIDER, 1)
    assert result["update"] == "NONE"
    assert result["link"] is None


def test_gate_range_is_validated():
    """A gate whose min is above its max is rejected."""
    with pytest.raises(ValidationError):
        VersionGate(min_version=5, max_version=3)


def test_snapshot_is_immutable(config):
    """The per-request config snapshot can't be modified."""
    with pytest.raises(ValidationError):
        config.delivery_charge = Decimal("0")


def test_alert_is_included(config):
    """An active alert is returned alongside the update decision."""
    alert = AlertInfo(title="Rain", message="Expect delays", type=AlertType.INFO)
    result = check_alert(snapshot_from_settings(alert=alert), AppId.CUSTOMER, None)
    assert result["alert"]["title"] == "Rain"


async def test_snapshot_reads_active_alert_and_valid_gates(session_factory):
    """Stored alerts and gates are loaded; invalid gates are skipped."""
    async with session_factory() as s:
        s.add_all([
            AppAlert(title="Old", message="stale", is_active=False),
            AppAlert(title="Diwali", message="Festive offers", is_active=True, type=AlertType.PROMO),
            AppVersion(app=AppId.RIDER, min_version=3, max_version=5),
            AppVersion(app=AppId.RESTAURANT, min_version=9, max_version=2),
        ])
        await s.commit()

    snapshot = await call(session_factory, load_config_snapshot)
    assert snapshot.alert.title == "Diwali"
    assert snapshot.alert.type == AlertType.PROMO
    assert set(snapshot.versions) == {AppId.RIDER}
    assert snapshot.delivery_charge == Decimal("30.0")
