"""Tests for ticket/OTP/identifier generation and OTP comparison."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import re
from datetime import datetime, timezone

import pytest

from services.otp import (
    generate_ticket_number, generate_otp, generate_transaction_id,
    generate_merchant_order_id, verify_otp,
)


def test_otp_and_ticket_are_six_digits():
    """Tickets and OTPs are always six digits."""
    for _ in range(200):
        assert 100000 <= generate_otp() <= 999999
        assert 100000 <= generate_ticket_number() <= 999999


def test_transaction_id_uses_local_date():
    """18:45 UTC on 31 Jan is already 1 Feb in IST."""
    now = datetime(2024, 1, 31, 18, 45, tzinfo=timezone.utc)
    txn = generate_transaction_id(now)
    assert re.fullmatch(r"T01022024\d{6}", txn)


def test_merchant_order_id_format():
    """Merchant and transaction ids carry the local date stamp."""
    now = datetime(2024, 3, 5, 6, 0, tzinfo=timezone.utc)
    assert re.fullmatch(r"MUID_05032024\d{6}", generate_merchant_order_id(now))


def test_otp_verify_success():
    """The exact OTP, as string or int, verifies."""
    assert verify_otp(482193, "482193")
    assert verify_otp(482193, 482193)


@pytest.mark.parametrize("provided", [
    "482194", " 482193", "482193 ", "0482193", "482193.0", "", "४८२१९३", True, None, 482193.0,
])
def test_otp_verify_rejects_non_canonical(provided):
    """Padded, signed or otherwise non-canonical input is refused."""
    assert verify_otp(482193, provided) is False
