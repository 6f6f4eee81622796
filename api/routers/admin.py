"""Admin endpoints — weekly settlements and rider cash controls."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db, SessionLocal
from models.enums import SettlementStatus
from schemas import (
    AdminAction, DepositUpdate, RiderResponse, SettlementPayRequest,
    SettlementResponse, SettlementRunResponse,
)
from services import dispatch, settlement

router = APIRouter()


# ── Settlements ────────────────────────────────────────────

@router.post("/settlements/generate", response_model=SettlementRunResponse)
async def generate_settlements():
    """Run the weekly batch now. Re-running for the same week creates nothing new."""
    report = await settlement.generate_weekly_settlements(SessionLocal)
    return SettlementRunResponse(
        week_start=report.week_start,
        week_end=report.week_end,
        created=report.created,
        skipped_existing=report.skipped_existing,
        skipped_empty=report.skipped_empty,
        failed=report.failed,
    )


@router.get("/settlements", response_model=list[SettlementResponse])
async def list_settlements(
    status: SettlementStatus | None = None,
    hotel_id: uuid.UUID | None = None,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    return await settlement.list_settlements(db, status=status, hotel_id=hotel_id, limit=limit)


@router.post("/settlements/{settlement_id}/pay", response_model=SettlementResponse)
async def mark_settlement_paid(
    settlement_id: uuid.UUID,
    data: SettlementPayRequest,
    db: AsyncSession = Depends(get_db),
):
    return await settlement.mark_settlement_paid(
        db, settlement_id, data.admin_id, data.proof_url, data.payment_mode, data.remarks,
    )


# ── Rider controls ─────────────────────────────────────────

@router.post("/riders/{rider_id}/block", response_model=RiderResponse)
async def block_rider(rider_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await dispatch.block_rider(db, rider_id)


@router.post("/riders/{rider_id}/unblock", response_model=RiderResponse)
async def unblock_rider(rider_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await dispatch.unblock_rider(db, rider_id)


@router.put("/riders/{rider_id}/deposit", response_model=RiderResponse)
async def set_deposit(rider_id: uuid.UUID, data: DepositUpdate, db: AsyncSession = Depends(get_db)):
    return await dispatch.set_deposit_threshold(db, rider_id, data.amount)


@router.post("/riders/{rider_id}/settle-cash")
async def settle_rider_cash(rider_id: uuid.UUID, data: AdminAction, db: AsyncSession = Depends(get_db)):
    """Mark the rider's collected COD as handed over and re-check the block."""
    return await dispatch.settle_rider_cash(db, rider_id, data.admin_id)
