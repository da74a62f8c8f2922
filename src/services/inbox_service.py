"""Notification inbox for buyers and guests."""

import logging
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import AuthorizationError
from src.models.order import NotificationAudience
from src.schemas.auth import UserContext
from src.services.access_service import AccessContext, AccessKind
from src.services.order_repository import NotificationScope, OrderRepository

logger = logging.getLogger(__name__)


def order_scope(order_id: str, context: AccessContext) -> NotificationScope:
    """Notifications of one order visible to a resolved caller.

    Guests read the GUEST feed of the order their magic link opens, owners
    their own USER feed, staff everything written for the order.
    """
    if context.kind == AccessKind.GUEST:
        return NotificationScope(order_id=order_id, audience=NotificationAudience.GUEST)
    if context.kind == AccessKind.OWNER:
        return NotificationScope(order_id=order_id, user_id=context.user_id, audience=NotificationAudience.USER)
    if context.kind == AccessKind.STAFF:
        return NotificationScope(order_id=order_id)
    raise AuthorizationError("Access denied")


def user_scope(user: UserContext) -> NotificationScope:
    return NotificationScope(user_id=user.user_id, audience=NotificationAudience.USER)


class NotificationInbox:
    """Reads and read-receipts over the append-only notification log."""

    def __init__(self, repository: OrderRepository | None = None) -> None:
        self.repository = repository or OrderRepository()

    async def page(
        self,
        scope: NotificationScope,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """Get one page of notifications with the scope's unread count.

        Returns:
            dict: Contains notifications, unread_count and has_more.
        """
        notifications = await self.repository.list_notifications(scope, unread_only, limit, offset)
        unread_count = await self.repository.count_unread_notifications(scope)
        return {
            "notifications": notifications,
            "unread_count": unread_count,
            "has_more": len(notifications) == limit,
        }

    async def mark_read(
        self,
        scope: NotificationScope,
        reader: AccessContext | UserContext,
        ids: list[UUID] | None = None,
    ) -> int:
        """Mark notifications as read for their recipient.

        Staff can read an order's feed but never acknowledge it on the
        buyer's behalf.

        Raises:
            AuthorizationError: If the reader is staff acting on an order feed.
        """
        if isinstance(reader, AccessContext) and not reader.is_buyer:
            raise AuthorizationError("Only the recipient can mark notifications as read")

        marked = await self.repository.mark_notifications_read(
            scope, [str(i) for i in ids] if ids is not None else None
        )
        logger.info(
            "Marked %d notification(s) read (order %s, user %s)",
            marked,
            scope.order_id,
            scope.user_id,
        )
        return marked
