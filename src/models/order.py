"""Order lifecycle row shapes and status enumerations.

The enum values are persisted verbatim and are relied upon by reporting
queries, so they must never be renamed.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypedDict
from uuid import UUID


class OrderStatus(str, Enum):
    """Status of an OrderRequest."""

    PENDING = "PENDING"
    VALUATED = "VALUATED"
    CHECKOUT = "CHECKOUT"
    PAID = "PAID"
    REMOVED = "REMOVED"


class ItemState(str, Enum):
    """Fulfillment state of a single OrderItem."""

    REQUESTED = "REQUESTED"
    VALUATED = "VALUATED"
    PURCHASED = "PURCHASED"
    DECLINED = "DECLINED"


class PaymentStatus(str, Enum):
    """Status of a single payment attempt."""

    INIT = "INIT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class PaymentProvider(str, Enum):
    """Payment providers able to confirm a payment."""

    STRIPE = "STRIPE"


class ShippingMethod(str, Enum):
    """Shipment methods priced by the checkout rate table."""

    STANDARD = "STANDARD"
    EXPRESS = "EXPRESS"


class NotificationAudience(str, Enum):
    """Who a notification is addressed to."""

    USER = "USER"
    GUEST = "GUEST"


class OrderRequest(TypedDict):
    """order_requests table row."""

    id: UUID
    short_code: str
    owner_user_id: UUID | None
    guest_email: str | None
    contact_email: str | None
    vin: str
    status: OrderStatus
    magic_link_hash: str | None
    magic_link_expires_at: datetime | None
    version: int
    created_at: datetime
    updated_at: datetime


class OrderItem(TypedDict):
    """order_items table row."""

    id: UUID
    order_request_id: UUID
    category_id: str
    quantity: int
    note: str | None
    photo_url: str | None
    state: ItemState


class Offer(TypedDict):
    """offers table row."""

    id: UUID
    order_item_id: UUID
    manufacturer: str
    unit_price: Decimal
    quantity_available: int
    notes: str | None
    version: int
    created_at: datetime
    updated_at: datetime


class ChosenOffer(TypedDict):
    """chosen_offers table row, unique per order item."""

    id: UUID
    order_item_id: UUID
    offer_id: UUID
    confirmed_at: datetime


class Payment(TypedDict):
    """payments table row."""

    id: UUID
    order_request_id: UUID
    provider: PaymentProvider
    session_id: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    raw_payload: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class Notification(TypedDict, total=False):
    """notifications table row (append-only apart from read receipts)."""

    id: UUID
    order_request_id: UUID
    user_id: UUID | None
    audience: NotificationAudience
    type: str
    title: str
    body: str
    is_read: bool
    created_at: datetime


class AuditLog(TypedDict, total=False):
    """audit_logs table row (append-only)."""

    order_request_id: UUID
    user_id: UUID | None
    action: str
    meta: dict[str, Any]


class OrderComment(TypedDict):
    """order_comments table row."""

    id: UUID
    order_request_id: UUID
    author_user_id: UUID | None
    body: str
    is_internal: bool
    created_at: datetime
