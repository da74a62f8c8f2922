"""Database model type definitions."""

from src.models.order import (
    AuditLog,
    ChosenOffer,
    ItemState,
    Notification,
    NotificationAudience,
    Offer,
    OrderComment,
    OrderItem,
    OrderRequest,
    OrderStatus,
    Payment,
    PaymentProvider,
    PaymentStatus,
    ShippingMethod,
)

__all__ = [
    "AuditLog",
    "ChosenOffer",
    "ItemState",
    "Notification",
    "NotificationAudience",
    "Offer",
    "OrderComment",
    "OrderItem",
    "OrderRequest",
    "OrderStatus",
    "Payment",
    "PaymentProvider",
    "PaymentStatus",
    "ShippingMethod",
]
