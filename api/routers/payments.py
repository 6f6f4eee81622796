"""Checkout endpoints — COD placement, online payment handoff and confirmation polling."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from routers.common import get_config_snapshot
from schemas import CheckoutRequest, LiveOrderResponse, OnlinePaymentResponse, PaymentConfirmResponse
from services import payments
from services.app_config import ConfigSnapshot

router = APIRouter()


@router.post("/{customer_id}/cod", response_model=LiveOrderResponse, status_code=201)
async def place_cod_order(
    customer_id: uuid.UUID,
    data: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    config: ConfigSnapshot = Depends(get_config_snapshot),
):
    return await payments.place_cod_order(
        db, customer_id, data.restaurant_id, data.item_dicts(), data.location_index, data.amount, config,
    )


@router.post("/{customer_id}/online", response_model=OnlinePaymentResponse, status_code=201)
async def initiate_online_payment(
    customer_id: uuid.UUID,
    data: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    config: ConfigSnapshot = Depends(get_config_snapshot),
):
    """Create the gateway order; the app completes payment with the returned token."""
    return await payments.initiate_online_payment(
        db, customer_id, data.restaurant_id, data.item_dicts(), data.location_index, data.amount, config,
    )


@router.get("/{customer_id}/confirm/{payment_id}", response_model=PaymentConfirmResponse)
async def payment_confirm(customer_id: uuid.UUID, payment_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await payments.payment_confirm(db, payment_id, customer_id=customer_id)
