"""
Inbound webhooks.

The payment gateway calls /payment-gateway once per checkout order state
change and retries until it gets a 2xx. Replays are safe: promotion happens
at most once per payment.
"""

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from services import payments

router = APIRouter()


@router.post("/payment-gateway")
async def payment_gateway_webhook(
    request: Request,
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
):
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")

    outcome = await payments.handle_gateway_webhook(db, authorization, body)
    return {"status": "OK", "outcome": outcome}
