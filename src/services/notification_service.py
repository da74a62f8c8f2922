"""Notification and audit emission for order lifecycle events.

Everything here runs after the primary write committed. Failures are logged
and swallowed: a missing notification must never undo an offer, a status
change or a settled payment.

Emails are handed to the request's background tasks when there are any, so
a slow mail provider never holds up a webhook acknowledgement.
"""

import logging
from typing import Any, Awaitable, Callable
from uuid import UUID

from fastapi import BackgroundTasks

from src.models.order import NotificationAudience, OrderStatus
from src.services.access_service import AccessContext
from src.services.email_service import EmailService
from src.services.order_repository import OrderRepository

logger = logging.getLogger(__name__)


def _guest_token(order: dict[str, Any]) -> str | None:
    return order.get("magic_link_hash") if order.get("guest_email") else None


class NotificationService:
    """Appends notification and audit records and dispatches emails."""

    def __init__(
        self,
        repository: OrderRepository | None = None,
        email_service: EmailService | None = None,
        background_tasks: BackgroundTasks | None = None,
    ) -> None:
        """Initialize with optional injected collaborators."""
        self.repository = repository or OrderRepository()
        self.email_service = email_service or EmailService()
        self.background_tasks = background_tasks

    async def _send_email(self, send: Callable[..., Awaitable[Any]], **kwargs: Any) -> None:
        if self.background_tasks is not None:
            self.background_tasks.add_task(send, **kwargs)
            return
        await send(**kwargs)

    async def emit(
        self,
        order: dict[str, Any],
        *,
        notification_type: str,
        title: str,
        body: str,
        action: str,
        meta: dict[str, Any],
        actor_user_id: UUID | str | None = None,
    ) -> None:
        """Append one notification and one audit entry for an order event."""
        owner_id = order.get("owner_user_id")
        notification = {
            "order_request_id": str(order["id"]),
            "user_id": str(owner_id) if owner_id else None,
            "audience": (NotificationAudience.USER if owner_id else NotificationAudience.GUEST).value,
            "type": notification_type,
            "title": title,
            "body": body,
        }
        audit = {
            "order_request_id": str(order["id"]),
            "user_id": str(actor_user_id) if actor_user_id else None,
            "action": action,
            "meta": meta,
        }

        try:
            await self.repository.insert_notification(notification)
        except Exception:
            logger.exception("Failed to write %s notification for order %s", notification_type, order["id"])

        try:
            await self.repository.insert_audit_log(audit)
        except Exception:
            logger.exception("Failed to write %s audit entry for order %s", action, order["id"])

    async def order_created(
        self,
        order: dict[str, Any],
        item_count: int,
        actor_user_id: UUID | None,
        magic_token: str | None,
    ) -> None:
        await self.emit(
            order,
            notification_type="ORDER_CREATED",
            title="Request received",
            body=f"Your request #{order.get('short_code')} has been received.",
            action="ORDER_CREATED",
            meta={"item_count": item_count, "guest": actor_user_id is None},
            actor_user_id=actor_user_id,
        )
        if order.get("contact_email"):
            await self._send_email(
                self.email_service.send_order_confirmation,
                to_email=order["contact_email"],
                order_id=str(order["id"]),
                short_code=order.get("short_code", ""),
                vin=order.get("vin", ""),
                item_count=item_count,
                magic_token=magic_token,
            )

    async def status_changed(
        self,
        order: dict[str, Any],
        source: OrderStatus,
        target: OrderStatus,
        actor: AccessContext | None,
        reason: str | None = None,
    ) -> None:
        meta: dict[str, Any] = {
            "from": source.value,
            "to": target.value,
            "actor": actor.actor_label if actor else "system",
        }
        if reason:
            meta["reason"] = reason
        await self.emit(
            order,
            notification_type="ORDER_REMOVED" if target == OrderStatus.REMOVED else "STATUS_CHANGED",
            title="Order status updated",
            body=f"Your order status has been changed to {target.value.lower()}",
            action="STATUS_CHANGED",
            meta=meta,
            actor_user_id=actor.user_id if actor else None,
        )
        if target == OrderStatus.VALUATED and order.get("contact_email"):
            await self._send_email(
                self.email_service.send_offers_ready,
                to_email=order["contact_email"],
                order_id=str(order["id"]),
                short_code=order.get("short_code", ""),
                magic_token=_guest_token(order),
            )

    async def offer_changed(
        self,
        order: dict[str, Any],
        action: str,
        offer: dict[str, Any],
        actor: AccessContext,
    ) -> None:
        await self.emit(
            order,
            notification_type=action,
            title="Offers updated",
            body=f"Offer from {offer.get('manufacturer')} was {action.split('_')[-1].lower()}.",
            action=action,
            meta={
                "offer_id": str(offer.get("id")),
                "order_item_id": str(offer.get("order_item_id")),
                "unit_price": str(offer.get("unit_price")),
                "actor": actor.actor_label,
            },
            actor_user_id=actor.user_id,
        )

    async def checkout_submitted(
        self,
        order: dict[str, Any],
        chosen_count: int,
        shipping_method: str,
        actor: AccessContext,
    ) -> None:
        await self.emit(
            order,
            notification_type="CHECKOUT_SUBMITTED",
            title="Checkout submitted",
            body=f"Checkout for order #{order.get('short_code')} received, awaiting payment.",
            action="CHECKOUT_SUBMITTED",
            meta={
                "chosen_offers": chosen_count,
                "shipping_method": shipping_method,
                "actor": actor.actor_label,
            },
            actor_user_id=actor.user_id,
        )

    async def payment_initiated(self, order: dict[str, Any], payment: dict[str, Any], actor: AccessContext) -> None:
        await self.emit(
            order,
            notification_type="PAYMENT_INITIATED",
            title="Payment started",
            body=f"Payment of {payment.get('amount')} {str(payment.get('currency', '')).upper()} started.",
            action="PAYMENT_INITIATED",
            meta={
                "payment_id": str(payment.get("id")),
                "amount": str(payment.get("amount")),
                "provider": payment.get("provider"),
            },
            actor_user_id=actor.user_id,
        )

    async def payment_succeeded(
        self,
        order: dict[str, Any],
        payment: dict[str, Any],
        source: OrderStatus,
    ) -> None:
        amount = str(payment.get("amount"))
        currency = str(payment.get("currency", ""))
        await self.emit(
            order,
            notification_type="PAYMENT_SUCCEEDED",
            title="Payment confirmed",
            body=f"Your payment of {amount} {currency.upper()} has been processed successfully.",
            action="PAYMENT_CONFIRMED",
            meta={
                "payment_id": str(payment.get("id")),
                "amount": amount,
                "provider": payment.get("provider"),
                "from": source.value,
                "to": OrderStatus.PAID.value,
            },
        )
        if order.get("contact_email"):
            await self._send_email(
                self.email_service.send_payment_confirmed,
                to_email=order["contact_email"],
                order_id=str(order["id"]),
                short_code=order.get("short_code", ""),
                amount=amount,
                currency=currency,
                magic_token=_guest_token(order),
            )

    async def payment_failed(self, order: dict[str, Any], payment: dict[str, Any], reason: str) -> None:
        await self.emit(
            order,
            notification_type="PAYMENT_FAILED",
            title="Payment failed",
            body="Your payment could not be completed. You can try again from your order page.",
            action="PAYMENT_FAILED",
            meta={"payment_id": str(payment.get("id")), "reason": reason},
        )

    async def comment_added(self, order: dict[str, Any], comment: dict[str, Any], actor: AccessContext) -> None:
        if comment.get("is_internal"):
            return
        await self.emit(
            order,
            notification_type="COMMENT_ADDED",
            title="New comment",
            body=str(comment.get("body", ""))[:200],
            action="COMMENT_ADDED",
            meta={"comment_id": str(comment.get("id")), "actor": actor.actor_label},
            actor_user_id=actor.user_id,
        )
