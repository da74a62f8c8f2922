"""Order status transitions and their item-state side effects."""

import logging
from typing import Any

from src.api.middleware.error_handler import AuthorizationError, InvalidTransitionError
from src.core.config import get_settings
from src.models.order import ItemState, OrderStatus
from src.services.access_service import AccessContext
from src.services.notification_service import NotificationService
from src.services.order_repository import OrderAggregate, OrderChangeSet, OrderRepository

logger = logging.getLogger(__name__)

# CHECKOUT has no explicit outgoing edges: it is left through settlement or
# by offer deletion only.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.VALUATED, OrderStatus.REMOVED}),
    OrderStatus.VALUATED: frozenset({OrderStatus.PAID, OrderStatus.REMOVED}),
    OrderStatus.PAID: frozenset({OrderStatus.REMOVED}),
    OrderStatus.REMOVED: frozenset({OrderStatus.PENDING}),
}


def validate_transition(source: OrderStatus, target: OrderStatus) -> None:
    """Raise InvalidTransitionError unless ``source -> target`` is an allowed edge."""
    if target not in ALLOWED_TRANSITIONS.get(source, frozenset()):
        raise InvalidTransitionError(source.value, target.value)


def paid_item_states(aggregate: OrderAggregate) -> dict[str, ItemState]:
    """Item outcomes written together with a PAID status.

    Items with a chosen offer are purchased; every other item is declined,
    so a paid order never keeps an item in REQUESTED or VALUATED.
    """
    chosen = aggregate.chosen_item_ids
    return {
        str(item["id"]): ItemState.PURCHASED if str(item["id"]) in chosen else ItemState.DECLINED
        for item in aggregate.items
    }


def build_transition(aggregate: OrderAggregate, target: OrderStatus) -> OrderChangeSet:
    """Validate an explicit transition and build its change set."""
    validate_transition(aggregate.status, target)
    item_states = paid_item_states(aggregate) if target == OrderStatus.PAID else {}
    return OrderChangeSet(
        order_id=aggregate.id,
        expected_version=aggregate.version,
        status=target,
        item_states=item_states,
    )


class OrderStateMachine:
    """Explicit staff-driven order status transitions."""

    def __init__(
        self,
        repository: OrderRepository | None = None,
        notifications: NotificationService | None = None,
        attempts: int | None = None,
    ) -> None:
        self.repository = repository or OrderRepository()
        self.notifications = notifications or NotificationService(repository=self.repository)
        self.attempts = attempts or get_settings().order_write_retries

    async def transition(
        self,
        order_id: str,
        requested_status: OrderStatus,
        actor: AccessContext,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Move an order to ``requested_status``.

        The status write and, for PAID, the bulk item-state update are one
        change set. One notification and one audit entry follow the commit.

        Args:
            order_id: The order's UUID.
            requested_status: Target status.
            actor: Resolved access context; must be staff.
            reason: Optional free-text reason stored in the audit entry.

        Returns:
            dict: The updated order row.

        Raises:
            AuthorizationError: If the actor is not staff.
            NotFoundError: If the order does not exist.
            InvalidTransitionError: If the edge is not allowed.
            ConcurrentModificationError: If retries are exhausted.
        """
        if not actor.is_staff:
            raise AuthorizationError("Only staff can change order status")

        try:
            aggregate, result = await self.repository.apply(
                order_id,
                lambda snapshot: build_transition(snapshot, requested_status),
                self.attempts,
            )
        except InvalidTransitionError as e:
            logger.warning("Rejected transition on order %s: %s", order_id, e.message)
            raise

        source = aggregate.status
        logger.info(
            "Order %s transitioned %s -> %s by %s",
            order_id,
            source.value,
            requested_status.value,
            actor.actor_label,
        )
        await self.notifications.status_changed(result.order, source, requested_status, actor, reason)
        return result.order
