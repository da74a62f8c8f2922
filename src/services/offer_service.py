"""Offer ledger: staff-priced offers and the item/order states they imply."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from src.api.middleware.error_handler import (
    AuthorizationError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from src.core.config import get_settings
from src.models.order import ItemState, OrderStatus
from src.services.access_service import AccessContext
from src.services.notification_service import NotificationService
from src.services.order_repository import OrderAggregate, OrderChangeSet, OrderRepository

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("manufacturer", "unit_price", "quantity_available", "notes")


@dataclass
class OfferMutation:
    """Outcome of an offer operation: the offer and the states it left behind."""

    offer: dict[str, Any]
    item_state: ItemState
    order_status: OrderStatus


def _check_positive(unit_price: Decimal | None, quantity_available: int | None) -> None:
    if unit_price is not None and unit_price <= 0:
        raise ValidationError("Unit price must be greater than zero")
    if quantity_available is not None and quantity_available <= 0:
        raise ValidationError("Available quantity must be greater than zero")


def build_offer_creation(
    aggregate: OrderAggregate, item_id: str, offer: dict[str, Any]
) -> OrderChangeSet:
    """Insert an offer, mark its item VALUATED and promote a PENDING order."""
    if aggregate.item(item_id) is None:
        raise NotFoundError("Order item not found")
    if aggregate.status == OrderStatus.PAID:
        raise InvalidTransitionError(OrderStatus.PAID.value, OrderStatus.VALUATED.value)

    return OrderChangeSet(
        order_id=aggregate.id,
        expected_version=aggregate.version,
        status=OrderStatus.VALUATED if aggregate.status == OrderStatus.PENDING else None,
        item_states={item_id: ItemState.VALUATED},
        offer_insert={**offer, "order_item_id": item_id},
    )


def build_offer_deletion(aggregate: OrderAggregate, offer_id: str) -> OrderChangeSet:
    """Delete an offer; the last one on an item resets item and order.

    The order goes back to PENDING whatever its current status, even when
    sibling items still have offers, so the whole request is reviewed again.
    """
    offer = aggregate.offer(offer_id)
    if offer is None:
        raise NotFoundError("Offer not found")

    item_id = str(offer["order_item_id"])
    chosen = aggregate.chosen_offer_for(item_id)
    if chosen and str(chosen["offer_id"]) == str(offer_id):
        raise ValidationError("Offer was chosen by the buyer and cannot be deleted")

    change_set = OrderChangeSet(
        order_id=aggregate.id,
        expected_version=aggregate.version,
        offer_delete_id=str(offer_id),
    )
    remaining = [o for o in aggregate.offers_for(item_id) if str(o["id"]) != str(offer_id)]
    if not remaining:
        change_set.status = OrderStatus.PENDING
        change_set.item_states = {item_id: ItemState.REQUESTED}
    return change_set


class OfferLedger:
    """Service for creating, updating and deleting offers."""

    def __init__(
        self,
        repository: OrderRepository | None = None,
        notifications: NotificationService | None = None,
        attempts: int | None = None,
    ) -> None:
        """Initialize the ledger with optional injected collaborators."""
        self.repository = repository or OrderRepository()
        self.notifications = notifications or NotificationService(repository=self.repository)
        self.attempts = attempts or get_settings().order_write_retries

    @staticmethod
    def _require_staff(actor: AccessContext) -> None:
        if not actor.is_staff:
            raise AuthorizationError("Only staff can manage offers")

    async def create_offer(
        self,
        item_id: str,
        manufacturer: str,
        unit_price: Decimal,
        quantity_available: int,
        actor: AccessContext,
        notes: str | None = None,
    ) -> OfferMutation:
        """Create an offer for an order item.

        Persisting the offer, marking the item VALUATED and promoting a
        PENDING order to VALUATED are one atomic change set.

        Raises:
            ValidationError: If price or quantity is not positive.
            NotFoundError: If the item does not exist.
            InvalidTransitionError: If the order is already PAID.
        """
        self._require_staff(actor)
        _check_positive(unit_price, quantity_available)

        item = await self.repository.get_item(item_id)
        if not item:
            raise NotFoundError("Order item not found")

        offer = {
            "manufacturer": manufacturer,
            "unit_price": unit_price,
            "quantity_available": quantity_available,
            "notes": notes,
        }
        aggregate, result = await self.repository.apply(
            str(item["order_request_id"]),
            lambda snapshot: build_offer_creation(snapshot, str(item_id), offer),
            self.attempts,
        )

        order = result.order
        created = result.offer or {}
        new_status = OrderStatus(order["status"])
        logger.info(
            "Offer %s created on item %s of order %s (%s -> %s)",
            created.get("id"),
            item_id,
            aggregate.id,
            aggregate.status.value,
            new_status.value,
        )

        await self.notifications.offer_changed(order, "OFFER_CREATED", created, actor)
        if new_status != aggregate.status:
            await self.notifications.status_changed(order, aggregate.status, new_status, actor)

        return OfferMutation(offer=created, item_state=ItemState.VALUATED, order_status=new_status)

    async def update_offer(
        self,
        offer_id: str,
        fields: dict[str, Any],
        actor: AccessContext,
        expected_version: int | None = None,
    ) -> OfferMutation:
        """Update offer fields. No item or order state changes.

        Raises:
            NotFoundError: If the offer does not exist.
            ConcurrentModificationError: If the offer version moved on.
        """
        self._require_staff(actor)
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        _check_positive(changes.get("unit_price"), changes.get("quantity_available"))

        offer = await self.repository.get_offer(offer_id)
        if not offer:
            raise NotFoundError("Offer not found")

        current_version = int(offer.get("version") or 0)
        if expected_version is not None and expected_version != current_version:
            logger.warning(
                "Stale update of offer %s: expected version %d, found %d",
                offer_id,
                expected_version,
                current_version,
            )
            raise ConcurrentModificationError("Offer was modified by someone else, reload and retry")

        updated = offer
        if changes:
            updated = await self.repository.update_offer(offer_id, current_version, changes)
            if updated is None:
                raise ConcurrentModificationError("Offer was modified by someone else, reload and retry")

        item = await self.repository.get_item(str(offer["order_item_id"]))
        order = await self.repository.get_order(str(offer["order_request_id"]))
        if not item or not order:
            raise NotFoundError("Order not found")

        logger.info("Offer %s updated (%s)", offer_id, ", ".join(sorted(changes)) or "no changes")
        if changes:
            await self.notifications.offer_changed(order, "OFFER_UPDATED", updated, actor)

        return OfferMutation(
            offer=updated,
            item_state=ItemState(item["state"]),
            order_status=OrderStatus(order["status"]),
        )

    async def delete_offer(self, offer_id: str, actor: AccessContext) -> OfferMutation:
        """Delete an offer, resetting item and order when it was the item's last.

        Raises:
            NotFoundError: If the offer does not exist.
            ValidationError: If the buyer chose this offer at checkout.
        """
        self._require_staff(actor)
        offer = await self.repository.get_offer(offer_id)
        if not offer:
            raise NotFoundError("Offer not found")

        aggregate, result = await self.repository.apply(
            str(offer["order_request_id"]),
            lambda snapshot: build_offer_deletion(snapshot, str(offer_id)),
            self.attempts,
        )

        order = result.order
        item_id = str(offer["order_item_id"])
        new_status = OrderStatus(order["status"])
        reset = not [o for o in aggregate.offers_for(item_id) if str(o["id"]) != str(offer_id)]
        item = aggregate.item(item_id) or {}
        item_state = ItemState.REQUESTED if reset else ItemState(item.get("state", ItemState.VALUATED.value))

        logger.info(
            "Offer %s deleted from item %s of order %s%s",
            offer_id,
            item_id,
            aggregate.id,
            " (item and order reset)" if reset else "",
        )

        await self.notifications.offer_changed(order, "OFFER_DELETED", offer, actor)
        if new_status != aggregate.status:
            await self.notifications.status_changed(order, aggregate.status, new_status, actor)

        return OfferMutation(offer=offer, item_state=item_state, order_status=new_status)
