"""Tests for the payment gateway client: token cache, order creation and webhook auth."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import asyncio
import base64
import hashlib
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from models.enums import PaymentStatus
from services import payment_gateway
from services.errors import ExternalDependencyError

_RealAsyncClient = httpx.AsyncClient
DIGEST = hashlib.sha256(b"gateway:s3cret").hexdigest()


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the token cache."""

    def __init__(self, initial=None):
        self.store = dict(initial or {})
        self.expiry = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.expiry[key] = ex


def _gateway_client(handler):
    """Route every httpx.AsyncClient the module opens through `handler`."""
    def factory(**kwargs):
        return _RealAsyncClient(transport=httpx.MockTransport(handler), **kwargs)
    return patch("httpx.AsyncClient", factory)


@pytest.fixture
def redis():
    fake = FakeRedis()
    with patch("services.payment_gateway._get_redis", AsyncMock(return_value=fake)), \
         patch("services.payment_gateway._token_lock", None):
        yield fake


@pytest.fixture
def credentials():
    with patch("config.settings.PAYMENT_CLIENT_ID", "client"), \
         patch("config.settings.PAYMENT_CLIENT_SECRET", "secret"):
        yield


# ── Token cache ────────────────────────────────────────────

async def test_cached_token_skips_the_gateway(redis):
    """A token already in Redis is returned without a network call."""
    redis.store[payment_gateway.TOKEN_CACHE_KEY] = "cached-token"
    fetch = AsyncMock()
    with patch("services.payment_gateway._request_token", fetch):
        assert await payment_gateway.get_access_token() == "cached-token"
    fetch.assert_not_awaited()


async def test_fresh_token_is_cached_with_its_ttl(redis):
    """A fetched token is stored for the TTL the gateway allowed."""
    with patch("services.payment_gateway._request_token", AsyncMock(return_value=("new-token", 570))):
        assert await payment_gateway.get_access_token() == "new-token"
    assert redis.store[payment_gateway.TOKEN_CACHE_KEY] == "new-token"
    assert redis.expiry[payment_gateway.TOKEN_CACHE_KEY] == 570


async def test_token_without_ttl_left_is_not_cached(redis):
    """A token about to expire is used once but never cached."""
    with patch("services.payment_gateway._request_token", AsyncMock(return_value=("short-token", 0))):
        assert await payment_gateway.get_access_token() == "short-token"
    assert payment_gateway.TOKEN_CACHE_KEY not in redis.store


async def test_concurrent_callers_share_one_token_request(redis):
    """Only one coroutine fetches; the rest read the freshly cached token."""
    calls = 0

    async def slow_fetch():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return "shared-token", 570

    with patch("services.payment_gateway._request_token", slow_fetch):
        tokens = await asyncio.gather(*(payment_gateway.get_access_token() for _ in range(5)))

    assert tokens == ["shared-token"] * 5
    assert calls == 1


async def test_token_request_applies_safety_margin(credentials):
    """The cache TTL stops 30 seconds before the gateway's expiry."""
    def handler(request):
        return httpx.Response(200, json={"access_token": "tok", "expires_at": 2_000_000_600})

    with _gateway_client(handler), patch("services.payment_gateway.time.time", return_value=2_000_000_000):
        token, ttl = await payment_gateway._request_token()
    assert token == "tok"
    assert ttl == 570


async def test_token_request_without_credentials_fails():
    """Missing client credentials never reach the network."""
    with patch("config.settings.PAYMENT_CLIENT_ID", ""):
        with pytest.raises(ExternalDependencyError):
            await payment_gateway._request_token()


async def test_token_endpoint_outage_is_an_upstream_error(credentials):
    """A 5xx from the token endpoint surfaces as ExternalDependencyError."""
    with _gateway_client(lambda request: httpx.Response(503)):
        with pytest.raises(ExternalDependencyError):
            await payment_gateway._request_token()


# ── Orders ─────────────────────────────────────────────────

async def test_create_order_sends_amount_in_paise():
    """Rupee totals go out as integer paise with the bearer token."""
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"orderId": "OMO-1", "token": "sdk-token", "state": "PENDING"})

    with patch("services.payment_gateway.get_access_token", AsyncMock(return_value="tok")), \
         _gateway_client(handler):
        order = await payment_gateway.create_order("MUID_01012024123456", "249.50")

    assert order.order_id == "OMO-1"
    assert order.token == "sdk-token"
    assert seen["auth"] == "O-Bearer tok"
    assert seen["body"]["merchantOrderId"] == "MUID_01012024123456"
    assert seen["body"]["amount"] == 24950


async def test_create_order_timeout_is_an_upstream_error():
    """A timed-out order request raises ExternalDependencyError."""
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with patch("services.payment_gateway.get_access_token", AsyncMock(return_value="tok")), \
         _gateway_client(handler):
        with pytest.raises(ExternalDependencyError):
            await payment_gateway.create_order("MUID_01012024123456", 250)


async def test_create_order_rejects_incomplete_response():
    """A response without orderId/token is treated as a gateway failure."""
    with patch("services.payment_gateway.get_access_token", AsyncMock(return_value="tok")), \
         _gateway_client(lambda request: httpx.Response(200, json={"state": "PENDING"})):
        with pytest.raises(ExternalDependencyError):
            await payment_gateway.create_order("MUID_01012024123456", 250)


@pytest.mark.parametrize("state, expected", [
    ("COMPLETED", PaymentStatus.SUCCESS),
    ("success", PaymentStatus.SUCCESS),
    ("FAILED", PaymentStatus.FAILURE),
    ("ABORTED", PaymentStatus.FAILURE),
    ("PENDING", PaymentStatus.PENDING),
    (None, PaymentStatus.PENDING),
])
def test_gateway_state_mapping(state, expected):
    assert payment_gateway.map_gateway_state(state) == expected


# ── Webhook auth ───────────────────────────────────────────

@pytest.mark.parametrize("header", [
    "Basic " + base64.b64encode(b"gateway:s3cret").decode(),
    "basic " + base64.b64encode(b"gateway:s3cret").decode(),
    DIGEST,
    DIGEST.upper(),
    f"SHA256({DIGEST})",
    f"SHA256 {DIGEST}",
])
def test_webhook_auth_accepts_basic_and_sha256(header):
    """Both the Basic and the SHA256(user:pass) header forms are accepted."""
    assert payment_gateway.verify_webhook_auth(header) is True


@pytest.mark.parametrize("header", [
    None,
    "",
    "Basic " + base64.b64encode(b"gateway:wrong").decode(),
    "Basic not-base64!!",
    hashlib.sha256(b"gateway:wrong").hexdigest(),
    f"SHA256({hashlib.sha256(b'someone:s3cret').hexdigest()})",
])
def test_webhook_auth_rejects_bad_credentials(header):
    """Wrong, malformed or missing credentials are refused."""
    assert payment_gateway.verify_webhook_auth(header) is False


def test_webhook_auth_refuses_everything_when_unconfigured():
    """With no configured webhook password no header can pass."""
    with patch("config.settings.PAYMENT_WEBHOOK_PASS", ""):
        assert payment_gateway.verify_webhook_auth(DIGEST) is False
