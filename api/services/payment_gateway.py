"""
Payment gateway client (PhonePe-style checkout API).

  - OAuth client-credentials token cached in Redis until 30s before expiry;
    concurrent callers in this process share one in-flight token request
  - Every call has a bounded timeout (PAYMENT_GATEWAY_TIMEOUT_S)
  - Webhook callers authenticate with the configured username/password,
    sent either as HTTP Basic or as SHA256("user:pass")
"""

import asyncio
import base64
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from decimal import Decimal

import httpx
import redis.asyncio as aioredis

from config import settings
from models.enums import PaymentStatus
from services.errors import ExternalDependencyError

logger = logging.getLogger(__name__)

TOKEN_CACHE_KEY = "pg:oauth_token"
TOKEN_SAFETY_MARGIN_S = 30
DEFAULT_TOKEN_TTL_S = 10 * 60
ORDER_EXPIRE_AFTER_S = 20 * 60

SUCCESS_STATES = {"COMPLETED", "SUCCESS"}
FAILURE_STATES = {"FAILED", "ERROR", "CANCELLED", "ABORTED"}

_redis: aioredis.Redis | None = None
_token_lock: asyncio.Lock | None = None


@dataclass
class GatewayOrder:
    order_id: str
    token: str
    state: str | None = None
    expire_at: int | None = None


@dataclass
class GatewayStatus:
    state: str
    order_id: str | None = None
    amount: int | None = None  # paise


async def _get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


def _get_token_lock() -> asyncio.Lock:
    global _token_lock
    if _token_lock is None:
        _token_lock = asyncio.Lock()
    return _token_lock


def to_paise(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


def map_gateway_state(state: str | None) -> PaymentStatus:
    s = str(state or "").upper()
    if s in SUCCESS_STATES:
        return PaymentStatus.SUCCESS
    if s in FAILURE_STATES:
        return PaymentStatus.FAILURE
    return PaymentStatus.PENDING


# ── OAuth token ────────────────────────────────────────────

async def _request_token() -> tuple[str, int]:
    if not settings.PAYMENT_CLIENT_ID or not settings.PAYMENT_CLIENT_SECRET:
        raise ExternalDependencyError("Payment gateway credentials are not configured")
    data = {
        "grant_type": "client_credentials",
        "client_id": settings.PAYMENT_CLIENT_ID,
        "client_secret": settings.PAYMENT_CLIENT_SECRET,
        "client_version": str(settings.PAYMENT_CLIENT_VERSION),
    }
    try:
        async with httpx.AsyncClient(timeout=settings.PAYMENT_GATEWAY_TIMEOUT_S) as client:
            resp = await client.post(settings.PAYMENT_GATEWAY_AUTH_URL, data=data)
            resp.raise_for_status()
            body = resp.json()
    except httpx.HTTPError as e:
        logger.error("Gateway token request failed: %s", e)
        raise ExternalDependencyError("Payment gateway unavailable") from e

    token = body.get("access_token")
    if not token:
        raise ExternalDependencyError("Payment gateway token response missing access_token")

    ttl = DEFAULT_TOKEN_TTL_S
    expires_at = body.get("expires_at")
    if expires_at:
        try:
            ttl = int(expires_at) - int(time.time())
        except (TypeError, ValueError):
            logger.warning("Unparseable token expires_at %r; using default TTL", expires_at)
    return token, max(ttl - TOKEN_SAFETY_MARGIN_S, 0)


async def get_access_token() -> str:
    r = await _get_redis()
    cached = await r.get(TOKEN_CACHE_KEY)
    if cached:
        return cached

    async with _get_token_lock():
        # Another coroutine may have refreshed it while we waited
        cached = await r.get(TOKEN_CACHE_KEY)
        if cached:
            return cached
        token, ttl = await _request_token()
        if ttl > 0:
            await r.set(TOKEN_CACHE_KEY, token, ex=ttl)
        return token


# ── Orders ─────────────────────────────────────────────────

async def create_order(merchant_order_id: str, amount) -> GatewayOrder:
    """Create a checkout order. Raises ExternalDependencyError on timeout or a bad response."""
    token = await get_access_token()
    payload = {
        "merchantOrderId": merchant_order_id,
        "amount": to_paise(amount),
        "expireAfter": ORDER_EXPIRE_AFTER_S,
        "paymentFlow": {"type": "PG_CHECKOUT"},
    }
    if settings.PAYMENT_REDIRECT_URL:
        payload["paymentFlow"]["merchantUrls"] = {"redirectUrl": settings.PAYMENT_REDIRECT_URL}

    try:
        async with httpx.AsyncClient(timeout=settings.PAYMENT_GATEWAY_TIMEOUT_S) as client:
            resp = await client.post(
                f"{settings.PAYMENT_GATEWAY_BASE_URL}/checkout/v2/sdk/order",
                json=payload,
                headers={"Authorization": f"O-Bearer {token}"},
            )
            resp.raise_for_status()
            body = resp.json()
    except httpx.HTTPError as e:
        logger.error("Gateway create_order failed for %s: %s", merchant_order_id, e)
        raise ExternalDependencyError("Payment gateway unavailable, please retry") from e

    if not body.get("orderId") or not body.get("token"):
        logger.error("Gateway create_order returned incomplete body for %s: %s", merchant_order_id, body)
        raise ExternalDependencyError("Payment gateway returned an invalid response")
    return GatewayOrder(
        order_id=body["orderId"],
        token=body["token"],
        state=body.get("state"),
        expire_at=body.get("expireAt"),
    )


async def order_status(merchant_order_id: str) -> GatewayStatus:
    token = await get_access_token()
    try:
        async with httpx.AsyncClient(timeout=settings.PAYMENT_GATEWAY_TIMEOUT_S) as client:
            resp = await client.get(
                f"{settings.PAYMENT_GATEWAY_BASE_URL}/checkout/v2/order/{merchant_order_id}/status",
                headers={"Authorization": f"O-Bearer {token}"},
            )
            resp.raise_for_status()
            body = resp.json()
    except httpx.HTTPError as e:
        raise ExternalDependencyError("Payment gateway status check failed") from e
    return GatewayStatus(state=str(body.get("state", "")), order_id=body.get("orderId"), amount=body.get("amount"))


# ── Webhook auth ───────────────────────────────────────────

def _safe_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify_webhook_auth(authorization: str | None) -> bool:
    user = settings.PAYMENT_WEBHOOK_USER.strip()
    password = settings.PAYMENT_WEBHOOK_PASS.strip()
    if not authorization or not user or not password:
        return False
    header = authorization.strip()

    if header[:6].lower() == "basic ":
        try:
            decoded = base64.b64decode(header[6:].strip(), validate=True).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            return False
        got_user, _, got_pass = decoded.partition(":")
        return _safe_equal(got_user, user) & _safe_equal(got_pass, password)

    expected = hashlib.sha256(f"{user}:{password}".encode("utf-8")).hexdigest()
    if header[:7].upper() == "SHA256(" and header.endswith(")"):
        header = header[7:-1].strip()
    elif header[:7].upper() == "SHA256 ":
        header = header[7:].strip()
    return _safe_equal(header.lower(), expected)
