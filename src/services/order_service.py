"""Order intake, reads and comments."""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from src.api.middleware.error_handler import AuthorizationError, NotFoundError, ValidationError
from src.core.config import get_settings
from src.models.order import ItemState, OrderStatus
from src.schemas.auth import UserContext
from src.schemas.order import OrderCreate
from src.services.access_service import AccessContext
from src.services.notification_service import NotificationService
from src.services.order_repository import OrderRepository

logger = logging.getLogger(__name__)

SHORT_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


class OrderService:
    """Service for creating and reading orders."""

    SHORT_CODE_LENGTH = 8
    TOKEN_LENGTH = 64  # Length of the magic link token in characters

    def __init__(
        self,
        repository: OrderRepository | None = None,
        notifications: NotificationService | None = None,
    ) -> None:
        self.repository = repository or OrderRepository()
        self.notifications = notifications or NotificationService(repository=self.repository)
        self.settings = get_settings()

    def _generate_short_code(self) -> str:
        return "".join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(self.SHORT_CODE_LENGTH))

    def _generate_token(self) -> str:
        """Generate a cryptographically secure magic link token."""
        return secrets.token_hex(self.TOKEN_LENGTH // 2)

    async def create_order(
        self, data: OrderCreate, user: UserContext | None
    ) -> tuple[dict[str, Any], str | None]:
        """Create a PENDING order with REQUESTED items.

        Authenticated callers own the order. Anonymous callers must give an
        email and receive a magic link token valid for the configured TTL.

        Returns:
            tuple: (order with items, magic link token or None)

        Raises:
            ValidationError: If an anonymous request has no email.
        """
        now = datetime.now(timezone.utc)
        token: str | None = None

        order_data: dict[str, Any] = {
            "short_code": self._generate_short_code(),
            "vin": data.vin,
            "status": OrderStatus.PENDING.value,
        }
        if user is not None:
            order_data["owner_user_id"] = str(user.user_id)
            order_data["contact_email"] = (user.email or data.guest_email or "").lower() or None
        else:
            if not data.guest_email:
                raise ValidationError("Email is required when ordering without an account")
            token = self._generate_token()
            order_data["guest_email"] = data.guest_email.lower()
            order_data["contact_email"] = data.guest_email.lower()
            order_data["magic_link_hash"] = token
            order_data["magic_link_expires_at"] = now + timedelta(days=self.settings.magic_link_ttl_days)

        items = [
            {
                "category_id": item.category_id,
                "quantity": item.quantity,
                "note": item.note,
                "photo_url": item.photo_url,
                "state": ItemState.REQUESTED.value,
            }
            for item in data.items
        ]

        order = await self.repository.create_order(order_data, items)
        logger.info(
            "Order %s (%s) created with %d item(s) by %s",
            order["id"],
            order["short_code"],
            len(items),
            f"user {user.user_id}" if user else "guest",
        )

        await self.notifications.order_created(
            order, len(items), user.user_id if user else None, token
        )
        return order, token

    async def get_order_detail(self, order_id: str) -> dict[str, Any]:
        """Assemble the full order aggregate for display.

        Access must already be resolved by the caller.
        """
        aggregate = await self.repository.load_aggregate(order_id)
        if aggregate is None:
            raise NotFoundError("Order not found")

        items = []
        for item in aggregate.items:
            chosen = aggregate.chosen_offer_for(str(item["id"]))
            items.append(
                {
                    **item,
                    "offers": aggregate.offers_for(str(item["id"])),
                    "chosen_offer_id": chosen["offer_id"] if chosen else None,
                }
            )

        fulfillment = await self.repository.get_fulfillment(order_id)
        latest_payment = await self.repository.get_latest_payment(order_id)
        return {
            **aggregate.order,
            "items": items,
            **fulfillment,
            "latest_payment": latest_payment,
        }

    async def list_my_orders(self, user: UserContext) -> list[dict[str, Any]]:
        return await self.repository.list_orders_for_user(user.user_id)

    async def list_orders(self, status: OrderStatus | None = None, limit: int = 100) -> list[dict[str, Any]]:
        """List orders for staff, optionally filtered by status."""
        return await self.repository.list_orders(status, limit)

    async def list_comments(self, order_id: str, actor: AccessContext) -> list[dict[str, Any]]:
        """List comments; internal ones are visible to staff only."""
        return await self.repository.list_comments(order_id, include_internal=actor.is_staff)

    async def add_comment(
        self,
        order: dict[str, Any],
        body: str,
        actor: AccessContext,
        is_internal: bool = False,
    ) -> dict[str, Any]:
        """Add a comment to an order.

        Raises:
            AuthorizationError: If a buyer posts an internal comment.
            ValidationError: If the order is REMOVED.
        """
        if is_internal and not actor.is_staff:
            raise AuthorizationError("Only staff can post internal comments")
        if order.get("status") == OrderStatus.REMOVED.value:
            raise ValidationError("Comments are closed for removed orders")

        comment = await self.repository.create_comment(
            {
                "order_request_id": str(order["id"]),
                "author_user_id": str(actor.user_id) if actor.user_id else None,
                "body": body,
                "is_internal": is_internal,
            }
        )
        logger.info(
            "Comment %s added to order %s by %s%s",
            comment["id"],
            order["id"],
            actor.actor_label,
            " (internal)" if is_internal else "",
        )
        await self.notifications.comment_added(order, comment, actor)
        return comment
