"""Order, offer and comment Pydantic schemas for API request/response models."""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from src.models.order import ItemState, OrderStatus, PaymentStatus

VIN_RE = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")


class OrderItemCreate(BaseModel):
    """One requested part line."""

    model_config = ConfigDict(str_strip_whitespace=True)

    category_id: str = Field(min_length=1, max_length=100, description="Part category reference")
    quantity: int = Field(default=1, ge=1, le=999)
    note: str | None = Field(default=None, max_length=200)
    photo_url: str | None = Field(default=None, max_length=500)


class OrderCreate(BaseModel):
    """Schema for POST /orders."""

    model_config = ConfigDict(str_strip_whitespace=True)

    vin: str = Field(description="17-character vehicle identification number")
    items: list[OrderItemCreate] = Field(min_length=1, max_length=50)
    guest_email: EmailStr | None = Field(
        default=None,
        description="Contact email, required when ordering without an account",
    )

    @field_validator("vin")
    @classmethod
    def validate_vin(cls, value: str) -> str:
        vin = value.strip().upper()
        if not VIN_RE.match(vin):
            raise ValueError("VIN must be 17 characters, letters I, O and Q are not allowed")
        return vin


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    category_id: str
    quantity: int
    note: str | None = None
    photo_url: str | None = None
    state: ItemState


class OfferResponse(BaseModel):
    """Schema for offer API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_item_id: UUID
    manufacturer: str
    unit_price: Decimal
    quantity_available: int
    notes: str | None = None
    version: int = 0
    updated_at: datetime | None = None


class OrderSummaryResponse(BaseModel):
    """Schema for order list entries."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    short_code: str
    vin: str
    status: OrderStatus
    version: int = 0
    created_at: datetime
    updated_at: datetime | None = None


class OrderCreateResponse(OrderSummaryResponse):
    """Created order; guests also receive their capability token."""

    items: list[OrderItemResponse] = Field(default_factory=list)
    access_token: str | None = Field(default=None, description="Magic link token for guest access")


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    created_at: datetime | None = None


class OrderDetailItem(OrderItemResponse):
    """Item with its offers and the buyer's chosen offer, if any."""

    offers: list[OfferResponse] = Field(default_factory=list)
    chosen_offer_id: UUID | None = None


class OrderDetailResponse(OrderSummaryResponse):
    """Full order aggregate as seen by its owner, guest or staff."""

    items: list[OrderDetailItem] = Field(default_factory=list)
    shipping_address: dict[str, Any] | None = None
    invoice: dict[str, Any] | None = None
    shipment: dict[str, Any] | None = None
    latest_payment: PaymentResponse | None = None


class OrderListResponse(BaseModel):
    """Schema for order list API responses."""

    items: list[OrderSummaryResponse]


class OfferCreate(BaseModel):
    """Schema for POST /admin/items/{item_id}/offers."""

    model_config = ConfigDict(str_strip_whitespace=True)

    manufacturer: str = Field(min_length=1, max_length=200)
    unit_price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    quantity_available: int = Field(gt=0)
    notes: str | None = Field(default=None, max_length=1000)


class OfferUpdate(BaseModel):
    """Schema for PATCH /admin/offers/{offer_id}; omitted fields are kept."""

    model_config = ConfigDict(str_strip_whitespace=True)

    manufacturer: str | None = Field(default=None, min_length=1, max_length=200)
    unit_price: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    quantity_available: int | None = Field(default=None, gt=0)
    notes: str | None = Field(default=None, max_length=1000)
    version: int | None = Field(default=None, ge=0, description="Expected offer version")


class OfferMutationResponse(BaseModel):
    """Offer operation result with the item and order states it produced."""

    offer: OfferResponse
    item_state: ItemState
    order_status: OrderStatus


class StatusUpdateRequest(BaseModel):
    """Schema for PATCH /admin/orders/{order_id}/status."""

    status: OrderStatus
    reason: str | None = Field(default=None, max_length=500)


class CommentCreate(BaseModel):
    body: str = Field(min_length=1, max_length=2000)
    is_internal: bool = Field(default=False, description="Staff-only comment")


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    author_user_id: UUID | None = None
    body: str
    is_internal: bool
    created_at: datetime
