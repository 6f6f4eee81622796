"""
Notification Service — FCM push to app users and Telegram alerts to ops.

Nothing here raises: a failed send is logged and reported back to the caller.
"""

import logging
from dataclasses import dataclass, field

import httpx

from config import settings

logger = logging.getLogger(__name__)

TELEGRAM_API = f"https://api.telegram.org/bot{settings.TELEGRAM_BOT_TOKEN}"

# FCM per-token errors meaning the token will never work again
INVALID_TOKEN_ERRORS = {"NotRegistered", "InvalidRegistration", "MismatchSenderId"}


@dataclass
class PushResult:
    sent: int = 0
    failed: int = 0
    invalid_tokens: list[str] = field(default_factory=list)


async def send_push(
    tokens: list[str],
    title: str,
    body: str,
    data: dict | None = None,
) -> PushResult:
    """Multicast a notification. Tokens FCM rejects as dead come back in invalid_tokens."""
    result = PushResult()
    tokens = [t for t in tokens or [] if t]
    if not tokens:
        return result
    if not settings.FCM_SERVER_KEY:
        logger.info("FCM_SERVER_KEY not configured; skipping push '%s'", title)
        return result

    headers = {
        "Authorization": f"key={settings.FCM_SERVER_KEY}",
        "Content-Type": "application/json",
    }
    payload = {
        "registration_ids": tokens,
        "notification": {"title": title, "body": body, "sound": "default"},
        "data": {k: str(v) for k, v in (data or {}).items()},
        "priority": "high",
    }
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(settings.FCM_API_URL, headers=headers, json=payload)
        if resp.status_code != 200:
            logger.warning("FCM error %s: %s", resp.status_code, resp.text[:200])
            result.failed = len(tokens)
            return result
        for token, outcome in zip(tokens, resp.json().get("results", [])):
            error = outcome.get("error")
            if error is None:
                result.sent += 1
                continue
            result.failed += 1
            if error in INVALID_TOKEN_ERRORS:
                result.invalid_tokens.append(token)
    except httpx.HTTPError as e:
        logger.warning("FCM push failed: %s", e)
        result.failed = len(tokens)
    return result


async def send_telegram_message(chat_id: int, text: str, parse_mode: str = "HTML") -> bool:
    """Send a message to a Telegram chat."""
    if not settings.TELEGRAM_BOT_TOKEN:
        return False
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(
                f"{TELEGRAM_API}/sendMessage",
                json={"chat_id": chat_id, "text": text, "parse_mode": parse_mode},
            )
            return resp.status_code == 200
    except httpx.HTTPError as e:
        logger.warning("Telegram notification error: %s", e)
        return False


async def notify_admin(message: str) -> bool:
    """Send an ops alert to the admin chat."""
    if not settings.ADMIN_TELEGRAM_ID:
        logger.error("Admin alert (no ADMIN_TELEGRAM_ID): %s", message)
        return False
    return await send_telegram_message(int(settings.ADMIN_TELEGRAM_ID), f"🔔 <b>Admin Alert</b>\n\n{message}")
