"""
OTP and identifier generation.

  - Ticket numbers and delivery OTPs are 6-digit integers (100000-999999)
  - Transaction ids:  T<ddmmyyyy><6 digits>
  - Merchant ids:     MUID_<ddmmyyyy><6 digits>
  - OTP comparison is exact on the canonical digit string
"""

import hmac
import secrets
from datetime import datetime

from services.clock import date_stamp


def _six_digits() -> int:
    return 100000 + secrets.randbelow(900000)


def generate_ticket_number() -> int:
    return _six_digits()


def generate_otp() -> int:
    return _six_digits()


def generate_transaction_id(now: datetime | None = None) -> str:
    return f"T{date_stamp(now)}{_six_digits()}"


def generate_merchant_order_id(now: datetime | None = None) -> str:
    return f"MUID_{date_stamp(now)}{_six_digits()}"


def verify_otp(stored: int, provided: str | int) -> bool:
    """
    Check a rider-entered OTP against the stored one.

    Only the canonical decimal form is accepted: "482193" matches 482193, while
    " 482193", "0482193", "482193.0" and booleans do not.
    """
    if isinstance(provided, bool):
        return False
    if isinstance(provided, int):
        provided = str(provided)
    if not isinstance(provided, str) or not provided.isascii() or not provided.isdigit():
        return False
    if len(provided) > 1 and provided.startswith("0"):
        return False
    return hmac.compare_digest(provided, str(stored))
