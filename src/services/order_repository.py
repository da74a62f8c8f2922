"""Supabase persistence for the order aggregate.

Reads go through PostgREST table queries. Every write that touches more than
one row of an order aggregate is packed into an ``OrderChangeSet`` and applied
by the ``commit_order_changes`` Postgres function in a single transaction,
guarded by the order's optimistic ``version`` column.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable
from uuid import UUID

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError

from src.api.middleware.error_handler import (
    ConcurrentModificationError,
    InternalError,
    NotFoundError,
)
from src.core.supabase import get_supabase_client
from src.models.order import ItemState, NotificationAudience, OrderStatus, PaymentProvider, PaymentStatus

logger = logging.getLogger(__name__)


class StaleOrderVersion(Exception):
    """The order version changed between read and commit."""


class PaymentNotPending(Exception):
    """The payment referenced by a change set is no longer INIT."""


@dataclass
class OrderAggregate:
    """Snapshot of one order with its items, offers and chosen offers."""

    order: dict[str, Any]
    items: list[dict[str, Any]] = field(default_factory=list)
    offers: list[dict[str, Any]] = field(default_factory=list)
    chosen_offers: list[dict[str, Any]] = field(default_factory=list)

    @property
    def id(self) -> str:
        return str(self.order["id"])

    @property
    def status(self) -> OrderStatus:
        return OrderStatus(self.order["status"])

    @property
    def version(self) -> int:
        return int(self.order.get("version") or 0)

    def item(self, item_id: str) -> dict[str, Any] | None:
        return next((i for i in self.items if str(i["id"]) == str(item_id)), None)

    def offer(self, offer_id: str) -> dict[str, Any] | None:
        return next((o for o in self.offers if str(o["id"]) == str(offer_id)), None)

    def offers_for(self, item_id: str) -> list[dict[str, Any]]:
        return [o for o in self.offers if str(o["order_item_id"]) == str(item_id)]

    def chosen_offer_for(self, item_id: str) -> dict[str, Any] | None:
        return next(
            (c for c in self.chosen_offers if str(c["order_item_id"]) == str(item_id)),
            None,
        )

    @property
    def chosen_item_ids(self) -> set[str]:
        return {str(c["order_item_id"]) for c in self.chosen_offers}


@dataclass
class OrderChangeSet:
    """Every write one operation makes to an order aggregate.

    Applied all-or-nothing by ``commit_order_changes``. ``status`` and
    ``item_states`` are always written together so an order status is never
    visible without its matching item states.
    """

    order_id: str
    expected_version: int
    status: OrderStatus | None = None
    item_states: dict[str, ItemState] = field(default_factory=dict)
    offer_insert: dict[str, Any] | None = None
    offer_delete_id: str | None = None
    checkout: dict[str, Any] | None = None
    payment_settlement: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize into the JSON document the SQL function consumes."""
        payload: dict[str, Any] = {
            "item_states": {item_id: state.value for item_id, state in self.item_states.items()},
        }
        if self.status is not None:
            payload["status"] = self.status.value
        if self.offer_insert is not None:
            payload["offer_insert"] = _jsonable(self.offer_insert)
        if self.offer_delete_id is not None:
            payload["offer_delete_id"] = self.offer_delete_id
        if self.checkout is not None:
            payload["checkout"] = _jsonable(self.checkout)
        if self.payment_settlement is not None:
            payload["payment_settlement"] = _jsonable(self.payment_settlement)
        return payload


@dataclass(frozen=True)
class NotificationScope:
    """Filter selecting the notifications one reader may see."""

    user_id: UUID | str | None = None
    order_id: str | None = None
    audience: NotificationAudience | None = None


@dataclass
class CommitResult:
    """Rows returned by a successful commit."""

    order: dict[str, Any]
    offer: dict[str, Any] | None = None


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


ChangeSetBuilder = Callable[[OrderAggregate], OrderChangeSet | None]


class OrderRepository:
    """Data access for orders, offers, payments and their side tables."""

    SNAPSHOT_ATTEMPTS = 3

    def __init__(self) -> None:
        """Initialize repository with the shared Supabase client."""
        self.client = get_supabase_client()

    def _execute(self, query: Any) -> Any:
        """Run a PostgREST query, surfacing transport failures as InternalError."""
        try:
            return query.execute()
        except (PostgrestAPIError, httpx.HTTPError) as e:
            logger.error("Database query failed: %s", str(e))
            raise InternalError(f"Database query failed: {e}") from e

    # Orders

    async def get_order(self, order_id: str) -> dict[str, Any] | None:
        """Get an order row by ID."""
        response = self._execute(
            self.client.table("order_requests")
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
        )
        return response.data if response and response.data else None

    async def load_aggregate(self, order_id: str) -> OrderAggregate | None:
        """Load an order together with its items, offers and chosen offers.

        Args:
            order_id: The order's UUID.

        The order row is read again after its children; if its version moved,
        the snapshot is rebuilt so callers never see a half-applied change set.

        Returns:
            OrderAggregate | None: The snapshot, or None if the order is absent.
        """
        order = await self.get_order(order_id)
        for _ in range(self.SNAPSHOT_ATTEMPTS):
            if not order:
                return None
            aggregate = await self._load_children(order)
            current = await self.get_order(order_id)
            if not current or current.get("version") == order.get("version"):
                return aggregate if current else None
            order = current

        raise ConcurrentModificationError()

    async def _load_children(self, order: dict[str, Any]) -> OrderAggregate:
        order_id = str(order["id"])
        items_response = self._execute(
            self.client.table("order_items")
            .select("*")
            .eq("order_request_id", str(order_id))
            .order("created_at")
        )
        items = items_response.data or []
        item_ids = [str(item["id"]) for item in items]

        offers: list[dict[str, Any]] = []
        chosen: list[dict[str, Any]] = []
        if item_ids:
            offers_response = self._execute(
                self.client.table("offers")
                .select("*")
                .in_("order_item_id", item_ids)
                .order("updated_at", desc=True)
            )
            offers = offers_response.data or []

            chosen_response = self._execute(
                self.client.table("chosen_offers")
                .select("*")
                .in_("order_item_id", item_ids)
            )
            chosen = chosen_response.data or []

        return OrderAggregate(order=order, items=items, offers=offers, chosen_offers=chosen)

    async def create_order(self, order_data: dict[str, Any], items: list[dict[str, Any]]) -> dict[str, Any]:
        """Insert a new order and its items in one transaction.

        Runs through the ``create_order_request`` Postgres function, so a
        failed item insert leaves no order behind.

        Returns:
            dict: The order row with an ``items`` list.

        Raises:
            InternalError: If the database rejects the order or any item.
        """
        response = self._execute(
            self.client.rpc(
                "create_order_request",
                {"p_order": _jsonable(order_data), "p_items": _jsonable(items)},
            )
        )
        if not response or not response.data:
            raise InternalError("Order was not created")
        return response.data

    async def list_orders_for_user(self, user_id: UUID) -> list[dict[str, Any]]:
        """Get all orders owned by a user, newest first."""
        response = self._execute(
            self.client.table("order_requests")
            .select("*")
            .eq("owner_user_id", str(user_id))
            .order("created_at", desc=True)
        )
        return response.data or []

    async def list_orders(self, status: OrderStatus | None = None, limit: int = 100) -> list[dict[str, Any]]:
        """Get orders for staff, optionally filtered by status."""
        query = self.client.table("order_requests").select("*")
        if status is not None:
            query = query.eq("status", status.value)
        response = self._execute(query.order("created_at", desc=True).limit(limit))
        return response.data or []

    async def link_guest_orders(self, email: str, user_id: UUID) -> int:
        """Move guest orders placed with ``email`` to the given user.

        One-way: owner is set, guest email and capability link are cleared,
        and each linked order's version is bumped.

        Returns:
            int: Number of orders linked.
        """
        response = self._execute(
            self.client.rpc("link_guest_orders", {"p_email": email.lower(), "p_user_id": str(user_id)})
        )
        return int(response.data or 0)

    async def get_fulfillment(self, order_id: str) -> dict[str, Any]:
        """Get the checkout aggregates of an order: address, invoice and shipment."""
        address = self._execute(
            self.client.table("addresses")
            .select("*")
            .eq("order_request_id", str(order_id))
            .eq("kind", "SHIPPING")
            .limit(1)
        )
        invoice = self._execute(
            self.client.table("invoice_details")
            .select("*")
            .eq("order_request_id", str(order_id))
            .limit(1)
        )
        shipment = self._execute(
            self.client.table("shipments")
            .select("*")
            .eq("order_request_id", str(order_id))
            .limit(1)
        )
        return {
            "shipping_address": address.data[0] if address.data else None,
            "invoice": invoice.data[0] if invoice.data else None,
            "shipment": shipment.data[0] if shipment.data else None,
        }

    # Items and offers

    async def get_item(self, item_id: str) -> dict[str, Any] | None:
        """Get an order item row by ID."""
        response = self._execute(
            self.client.table("order_items")
            .select("*")
            .eq("id", str(item_id))
            .maybe_single()
        )
        return response.data if response and response.data else None

    async def get_offer(self, offer_id: str) -> dict[str, Any] | None:
        """Get an offer joined with the order id of its item."""
        response = self._execute(
            self.client.table("offers")
            .select("*, order_items(order_request_id)")
            .eq("id", str(offer_id))
            .maybe_single()
        )
        if not response or not response.data:
            return None
        offer = dict(response.data)
        item = offer.pop("order_items", None) or {}
        offer["order_request_id"] = item.get("order_request_id")
        return offer

    async def update_offer(
        self, offer_id: str, expected_version: int, fields: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Update offer fields if its version still matches.

        Returns:
            dict | None: The updated row, or None when the version moved on.
        """
        update = {
            **_jsonable(fields),
            "version": expected_version + 1,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        response = self._execute(
            self.client.table("offers")
            .update(update)
            .eq("id", str(offer_id))
            .eq("version", expected_version)
        )
        return response.data[0] if response.data else None

    # Payments

    async def find_pending_payment(
        self, session_id: str, provider: PaymentProvider
    ) -> dict[str, Any] | None:
        """Find the INIT payment for a provider session."""
        response = self._execute(
            self.client.table("payments")
            .select("*")
            .eq("session_id", session_id)
            .eq("provider", provider.value)
            .eq("status", PaymentStatus.INIT.value)
            .limit(1)
        )
        return response.data[0] if response.data else None

    async def get_latest_payment(self, order_id: str) -> dict[str, Any] | None:
        """Get the most recent payment attempt for an order."""
        response = self._execute(
            self.client.table("payments")
            .select("*")
            .eq("order_request_id", str(order_id))
            .order("created_at", desc=True)
            .limit(1)
        )
        return response.data[0] if response.data else None

    async def create_payment(self, payment_data: dict[str, Any]) -> dict[str, Any]:
        """Insert a new INIT payment attempt."""
        response = self._execute(self.client.table("payments").insert(_jsonable(payment_data)))
        return response.data[0]

    async def mark_payment_failed(
        self, session_id: str, provider: PaymentProvider, raw_payload: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Flip a still-INIT payment to FAILED. Single row, no aggregate effects."""
        response = self._execute(
            self.client.table("payments")
            .update({"status": PaymentStatus.FAILED.value, "raw_payload": raw_payload})
            .eq("session_id", session_id)
            .eq("provider", provider.value)
            .eq("status", PaymentStatus.INIT.value)
        )
        return response.data[0] if response.data else None

    # Comments

    async def list_comments(self, order_id: str, include_internal: bool) -> list[dict[str, Any]]:
        """Get comments of an order in posting order."""
        query = (
            self.client.table("order_comments")
            .select("*")
            .eq("order_request_id", str(order_id))
        )
        if not include_internal:
            query = query.eq("is_internal", False)
        response = self._execute(query.order("created_at"))
        return response.data or []

    async def create_comment(self, comment_data: dict[str, Any]) -> dict[str, Any]:
        """Insert a comment."""
        response = self._execute(self.client.table("order_comments").insert(_jsonable(comment_data)))
        return response.data[0]

    # Append-only side tables

    async def insert_notification(self, notification: dict[str, Any]) -> None:
        self._execute(self.client.table("notifications").insert(_jsonable(notification)))

    async def insert_audit_log(self, entry: dict[str, Any]) -> None:
        self._execute(self.client.table("audit_logs").insert(_jsonable(entry)))

    # Notification inbox

    def _scoped(self, query: Any, scope: NotificationScope) -> Any:
        if scope.user_id is not None:
            query = query.eq("user_id", str(scope.user_id))
        if scope.order_id is not None:
            query = query.eq("order_request_id", str(scope.order_id))
        if scope.audience is not None:
            query = query.eq("audience", scope.audience.value)
        return query

    async def list_notifications(
        self,
        scope: NotificationScope,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Get notifications in a scope, newest first."""
        query = self._scoped(self.client.table("notifications").select("*"), scope)
        if unread_only:
            query = query.eq("is_read", False)
        response = self._execute(query.order("created_at", desc=True).range(offset, offset + limit - 1))
        return response.data or []

    async def count_unread_notifications(self, scope: NotificationScope) -> int:
        response = self._execute(
            self._scoped(self.client.table("notifications").select("id", count="exact"), scope).eq("is_read", False)
        )
        return response.count or 0

    async def mark_notifications_read(self, scope: NotificationScope, ids: list[str] | None = None) -> int:
        """Mark unread notifications in a scope as read, all of them when ``ids`` is None.

        Returns:
            int: Number of notifications marked.
        """
        query = self._scoped(self.client.table("notifications").update({"is_read": True}), scope)
        if ids is not None:
            query = query.in_("id", [str(i) for i in ids])
        response = self._execute(query.eq("is_read", False))
        return len(response.data) if response.data else 0

    # Atomic writes

    async def commit(self, change_set: OrderChangeSet) -> CommitResult:
        """Apply a change set atomically.

        Raises:
            StaleOrderVersion: If the order version no longer matches.
            PaymentNotPending: If the settled payment is no longer INIT.
            NotFoundError: If the order disappeared.
            InternalError: On any persistence failure.
        """
        response = self._execute(
            self.client.rpc(
                "commit_order_changes",
                {
                    "p_order_id": change_set.order_id,
                    "p_expected_version": change_set.expected_version,
                    "p_changes": change_set.to_payload(),
                },
            )
        )
        result = response.data or {}

        conflict = result.get("conflict")
        if conflict == "version":
            raise StaleOrderVersion(change_set.order_id)
        if conflict == "payment_not_pending":
            raise PaymentNotPending(change_set.order_id)
        if conflict == "order_not_found":
            raise NotFoundError("Order not found")
        if conflict:
            raise InternalError(f"Unexpected commit conflict: {conflict}")

        return CommitResult(order=result["order"], offer=result.get("offer"))

    async def apply(
        self,
        order_id: str,
        build: ChangeSetBuilder,
        attempts: int = 3,
    ) -> tuple[OrderAggregate, CommitResult | None]:
        """Read-validate-commit loop with optimistic retry.

        ``build`` receives a fresh snapshot each attempt and either returns a
        change set, returns None (nothing to write), or raises a business
        error which propagates unchanged.

        Returns:
            tuple: The snapshot the commit was based on and the commit result.

        Raises:
            NotFoundError: If the order does not exist.
            ConcurrentModificationError: If every attempt hit a stale version.
        """
        for attempt in range(1, attempts + 1):
            aggregate = await self.load_aggregate(order_id)
            if aggregate is None:
                raise NotFoundError("Order not found")

            change_set = build(aggregate)
            if change_set is None:
                return aggregate, None

            try:
                return aggregate, await self.commit(change_set)
            except StaleOrderVersion:
                logger.info(
                    "Order %s changed during write (attempt %d/%d), retrying",
                    order_id,
                    attempt,
                    attempts,
                )

        logger.warning("Giving up on order %s after %d stale attempts", order_id, attempts)
        raise ConcurrentModificationError()
