"""Rider app endpoints — duty, order claim, delivery progress and cash collection."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from schemas import (
    ClaimRequest, RiderStatusChange, ReachedPickupRequest, CompleteOrderRequest,
    LiveOrderResponse, PastOrderResponse,
)
from services import dispatch, order_machine

router = APIRouter()


# ── Duty & dispatch ────────────────────────────────────────

@router.post("/{rider_id}/duty")
async def toggle_duty(rider_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    on_duty = await dispatch.toggle_duty(db, rider_id)
    return {"status": "OK", "on_duty": on_duty}


@router.get("/{rider_id}/orders/available")
async def available_orders(
    rider_id: uuid.UUID,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    db: AsyncSession = Depends(get_db),
):
    return await dispatch.available_orders(db, rider_id, lat, lng)


@router.get("/{rider_id}/activity")
async def current_activity(rider_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """What the rider is doing right now, derived from the order they hold."""
    return await dispatch.current_activity(db, rider_id)


# ── Order progress ─────────────────────────────────────────

@router.post("/{rider_id}/orders/{order_id}/claim", response_model=LiveOrderResponse)
async def claim_order(
    rider_id: uuid.UUID,
    order_id: uuid.UUID,
    data: ClaimRequest,
    db: AsyncSession = Depends(get_db),
):
    return await order_machine.claim_order(db, rider_id, order_id, data.model_dump(exclude_none=True))


@router.patch("/{rider_id}/orders/{order_id}/status", response_model=LiveOrderResponse)
async def change_status(
    rider_id: uuid.UUID,
    order_id: uuid.UUID,
    data: RiderStatusChange,
    db: AsyncSession = Depends(get_db),
):
    return await order_machine.change_status(db, rider_id, order_id, data.status)


@router.post("/{rider_id}/orders/{order_id}/reached-pickup")
async def reached_pickup(
    rider_id: uuid.UUID,
    order_id: uuid.UUID,
    data: ReachedPickupRequest,
    db: AsyncSession = Depends(get_db),
):
    meta = await order_machine.reached_pickup(db, rider_id, order_id, data.selfie_url)
    return {"status": "OK", "reached_restaurant_at": meta.reached_restaurant_at}


@router.post("/{rider_id}/orders/{order_id}/picked-up", response_model=LiveOrderResponse)
async def picked_up(rider_id: uuid.UUID, order_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await order_machine.order_picked_up(db, rider_id, order_id)


@router.post("/{rider_id}/orders/{order_id}/reached-drop", response_model=LiveOrderResponse)
async def reached_drop(rider_id: uuid.UUID, order_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await order_machine.order_reached_drop(db, rider_id, order_id)


@router.post("/{rider_id}/orders/{order_id}/complete", response_model=PastOrderResponse)
async def complete_order(
    rider_id: uuid.UUID,
    order_id: uuid.UUID,
    data: CompleteOrderRequest,
    db: AsyncSession = Depends(get_db),
):
    return await order_machine.complete_order(db, rider_id, order_id, data.otp)


# ── Cash ───────────────────────────────────────────────────

@router.get("/{rider_id}/collection")
async def collection_report(rider_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await dispatch.collection_report(db, rider_id)


@router.get("/{rider_id}/collection/unsettled")
async def unsettled_orders(rider_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await dispatch.unsettled_orders(db, rider_id)
