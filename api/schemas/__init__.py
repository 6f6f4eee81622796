"""Pydantic schemas for API request/response models."""

from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from models.enums import (
    OrderStatus, PaymentMode, RestaurantStatus, SettlementStatus,
)


# ── Customer / checkout ────────────────────────────────────

class DiscoverRequest(BaseModel):
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class CartItem(BaseModel):
    listing_id: uuid.UUID
    quantity: int = Field(..., gt=0, le=50)


class CheckoutRequest(BaseModel):
    restaurant_id: uuid.UUID
    items: list[CartItem] = Field(..., min_length=1)
    location_index: int = Field(..., ge=0)
    amount: Decimal = Field(..., gt=0)

    def item_dicts(self) -> list[dict]:
        return [item.model_dump(mode="json") for item in self.items]


class OnlinePaymentResponse(BaseModel):
    payment_id: uuid.UUID
    draft_id: uuid.UUID
    transaction_id: str
    merchant_order_id: str
    gateway_order_id: str
    token: str
    amount: Decimal
    environment: str


class PaymentConfirmResponse(BaseModel):
    status: Literal["SUCCESS", "FAILED", "PENDING"]
    order_id: uuid.UUID | None = None


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class ListingResponse(BaseModel):
    id: uuid.UUID
    name: str
    original_price: Decimal
    discounted_price: Decimal
    in_stock: bool
    category: str | None

    class Config:
        from_attributes = True


class LiveOrderResponse(BaseModel):
    id: uuid.UUID
    ticket_number: int
    status: OrderStatus
    restaurant_status: RestaurantStatus | None
    mode: PaymentMode
    total_price: Decimal
    preparation_time: int | None
    ordered_at: datetime

    class Config:
        from_attributes = True


class PastOrderResponse(BaseModel):
    id: uuid.UUID
    ticket_number: int
    status: str
    reason: str | None
    mode: PaymentMode
    total_price: Decimal
    items: list
    ordered_at: datetime
    closed_at: datetime

    class Config:
        from_attributes = True


# ── Restaurant ─────────────────────────────────────────────

class AcceptOrderRequest(BaseModel):
    preparation_time: int = Field(..., gt=0, le=180)


class KitchenStatusUpdate(BaseModel):
    status: Literal["ALMOST_READY", "READY"]


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class ServingUpdate(BaseModel):
    is_serving: bool


class ScheduleSlot(BaseModel):
    open: str | None = Field(None, pattern=r"^\d{1,2}:\d{2}$")
    close: str | None = Field(None, pattern=r"^\d{1,2}:\d{2}$")


class ScheduleUpdate(BaseModel):
    enabled: bool
    weekly_schedule: dict[str, ScheduleSlot] | None = None


class RestaurantStatusResponse(BaseModel):
    id: uuid.UUID
    name: str
    is_serving: bool
    auto_schedule_enabled: bool
    weekly_schedule: dict

    class Config:
        from_attributes = True


# ── Rider ──────────────────────────────────────────────────

class ClaimRequest(BaseModel):
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    hotel_distance: float | None = Field(None, ge=0)
    customer_distance: float | None = Field(None, ge=0)


class RiderStatusChange(BaseModel):
    status: Literal["ACCEPTED", "PICKEDUP", "DROP"]


class ReachedPickupRequest(BaseModel):
    selfie_url: str = Field(..., min_length=1)


class CompleteOrderRequest(BaseModel):
    otp: str = Field(..., pattern=r"^\d{6}$")


class RiderResponse(BaseModel):
    id: uuid.UUID
    name: str
    phone: str
    on_duty: bool
    is_available: bool
    is_blocked: bool
    serving_order_id: uuid.UUID | None
    deposit_amount: Decimal

    class Config:
        from_attributes = True


# ── Admin ──────────────────────────────────────────────────

class DepositUpdate(BaseModel):
    amount: Decimal = Field(..., gt=0)


class AdminAction(BaseModel):
    admin_id: uuid.UUID


class SettlementPayRequest(BaseModel):
    admin_id: uuid.UUID
    proof_url: str = Field(..., min_length=1)
    payment_mode: str | None = None
    remarks: str | None = None


class SettlementResponse(BaseModel):
    id: uuid.UUID
    hotel_id: uuid.UUID
    week_start: datetime
    week_end: datetime
    total_orders: int
    gross_revenue: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    tax_rate: Decimal
    tax_on_commission: Decimal
    net_revenue: Decimal
    status: SettlementStatus
    remarks: str | None
    proof_url: str | None
    payment_mode: str | None
    paid_at: datetime | None
    paid_by: uuid.UUID | None
    generated_at: datetime

    class Config:
        from_attributes = True


class SettlementRunResponse(BaseModel):
    week_start: datetime
    week_end: datetime
    created: list[uuid.UUID]
    skipped_existing: int
    skipped_empty: int
    failed: list[uuid.UUID]
