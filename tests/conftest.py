"""Pytest configuration and fixtures."""

import copy
import os
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID, uuid4

import pytest
from fastapi import BackgroundTasks
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("RESEND_API_KEY", "")

from src.api.middleware.error_handler import NotFoundError  # noqa: E402
from src.models.order import ItemState, OrderStatus, PaymentStatus  # noqa: E402
from src.schemas.auth import UserContext  # noqa: E402
from src.services.access_service import AccessContext, AccessKind  # noqa: E402
from src.services.notification_service import NotificationService  # noqa: E402
from src.services.order_repository import (  # noqa: E402
    CommitResult,
    NotificationScope,
    OrderAggregate,
    OrderChangeSet,
    OrderRepository,
    PaymentNotPending,
    StaleOrderVersion,
)

STAFF_ID = UUID("11111111-1111-4111-8111-111111111111")
OWNER_ID = UUID("22222222-2222-4222-8222-222222222222")
STRANGER_ID = UUID("33333333-3333-4333-8333-333333333333")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryOrderRepository(OrderRepository):
    """Order store double with the same semantics as the Supabase repository.

    ``commit`` mirrors ``commit_order_changes``: version check first, payment
    settlement conditional on INIT, then every part applied together.
    ``apply`` and ``load_aggregate`` are the real implementations.
    """

    def __init__(self) -> None:
        self.client = None
        self.orders: dict[str, dict[str, Any]] = {}
        self.items: dict[str, dict[str, Any]] = {}
        self.offers: dict[str, dict[str, Any]] = {}
        self.chosen: dict[str, dict[str, Any]] = {}
        self.payments: dict[str, dict[str, Any]] = {}
        self.addresses: dict[str, dict[str, Any]] = {}
        self.invoices: dict[str, dict[str, Any]] = {}
        self.shipments: dict[str, dict[str, Any]] = {}
        self.comments: list[dict[str, Any]] = []
        self.notifications: list[dict[str, Any]] = []
        self.audit_logs: list[dict[str, Any]] = []
        self.commits = 0
        # Number of upcoming commits that lose the race against another writer
        self.concurrent_writes = 0

    # Seeding helpers

    def add_order(
        self,
        status: OrderStatus = OrderStatus.PENDING,
        owner_user_id: UUID | None = OWNER_ID,
        guest_email: str | None = None,
        quantities: tuple[int, ...] = (1,),
        magic_link: str | None = None,
        magic_link_expires_at: datetime | None = None,
    ) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        order_id = str(uuid4())
        order = {
            "id": order_id,
            "short_code": "ABCD2345",
            "owner_user_id": str(owner_user_id) if owner_user_id else None,
            "guest_email": guest_email,
            "contact_email": guest_email or "owner@example.com",
            "vin": "WVWZZZ1JZXW000001",
            "status": status.value,
            "magic_link_hash": magic_link,
            "magic_link_expires_at": magic_link_expires_at.isoformat() if magic_link_expires_at else None,
            "version": 0,
            "created_at": _now(),
            "updated_at": _now(),
        }
        self.orders[order_id] = order
        items = [self.add_item(order_id, quantity) for quantity in quantities]
        return copy.deepcopy(order), items

    def add_item(self, order_id: str, quantity: int = 1, state: ItemState = ItemState.REQUESTED) -> dict[str, Any]:
        item_id = str(uuid4())
        self.items[item_id] = {
            "id": item_id,
            "order_request_id": order_id,
            "category_id": "brakes",
            "quantity": quantity,
            "note": None,
            "photo_url": None,
            "state": state.value,
            "created_at": _now(),
        }
        return copy.deepcopy(self.items[item_id])

    def add_offer(self, item_id: str, unit_price: str = "100.00", manufacturer: str = "Bosch") -> dict[str, Any]:
        offer_id = str(uuid4())
        self.offers[offer_id] = {
            "id": offer_id,
            "order_item_id": item_id,
            "manufacturer": manufacturer,
            "unit_price": unit_price,
            "quantity_available": 5,
            "notes": None,
            "version": 0,
            "created_at": _now(),
            "updated_at": _now(),
        }
        return copy.deepcopy(self.offers[offer_id])

    def add_payment(
        self,
        order_id: str,
        amount: str,
        session_id: str = "cs_test_123",
        currency: str = "pln",
        status: PaymentStatus = PaymentStatus.INIT,
    ) -> dict[str, Any]:
        payment_id = str(uuid4())
        self.payments[payment_id] = {
            "id": payment_id,
            "order_request_id": order_id,
            "provider": "STRIPE",
            "session_id": session_id,
            "amount": amount,
            "currency": currency,
            "status": status.value,
            "raw_payload": None,
            "created_at": _now(),
            "updated_at": _now(),
        }
        return copy.deepcopy(self.payments[payment_id])

    def item_states(self, order_id: str) -> dict[str, str]:
        return {i["id"]: i["state"] for i in self.items.values() if i["order_request_id"] == order_id}

    def snapshot(self) -> dict[str, Any]:
        """Copy of every mutable table, for asserting that nothing changed."""
        return copy.deepcopy(
            {
                "orders": self.orders,
                "items": self.items,
                "offers": self.offers,
                "chosen": self.chosen,
                "payments": self.payments,
                "addresses": self.addresses,
                "invoices": self.invoices,
                "shipments": self.shipments,
            }
        )

    # Repository interface

    async def get_order(self, order_id: str) -> dict[str, Any] | None:
        order = self.orders.get(str(order_id))
        return copy.deepcopy(order) if order else None

    async def _load_children(self, order: dict[str, Any]) -> OrderAggregate:
        items = [i for i in self.items.values() if i["order_request_id"] == str(order["id"])]
        item_ids = {i["id"] for i in items}
        return OrderAggregate(
            order=copy.deepcopy(order),
            items=copy.deepcopy(items),
            offers=copy.deepcopy([o for o in self.offers.values() if o["order_item_id"] in item_ids]),
            chosen_offers=copy.deepcopy([c for c in self.chosen.values() if c["order_item_id"] in item_ids]),
        )

    async def create_order(self, order_data: dict[str, Any], items: list[dict[str, Any]]) -> dict[str, Any]:
        order_id = str(uuid4())
        expires = order_data.get("magic_link_expires_at")
        self.orders[order_id] = {
            "id": order_id,
            "owner_user_id": None,
            "guest_email": None,
            "contact_email": None,
            "magic_link_hash": None,
            **order_data,
            "magic_link_expires_at": expires.isoformat() if isinstance(expires, datetime) else expires,
            "version": 0,
            "created_at": _now(),
            "updated_at": _now(),
        }
        created = []
        for item in items:
            item_id = str(uuid4())
            self.items[item_id] = {"id": item_id, "order_request_id": order_id, **item}
            created.append(copy.deepcopy(self.items[item_id]))
        return {**copy.deepcopy(self.orders[order_id]), "items": created}

    async def list_orders_for_user(self, user_id: UUID) -> list[dict[str, Any]]:
        return [copy.deepcopy(o) for o in self.orders.values() if o["owner_user_id"] == str(user_id)]

    async def list_orders(self, status: OrderStatus | None = None, limit: int = 100) -> list[dict[str, Any]]:
        orders = [o for o in self.orders.values() if status is None or o["status"] == status.value]
        return copy.deepcopy(orders[:limit])

    async def link_guest_orders(self, email: str, user_id: UUID) -> int:
        linked = 0
        for order in self.orders.values():
            if order["guest_email"] == email.lower() and order["owner_user_id"] is None:
                order.update(
                    owner_user_id=str(user_id),
                    guest_email=None,
                    magic_link_hash=None,
                    magic_link_expires_at=None,
                    version=order["version"] + 1,
                )
                linked += 1
        return linked

    async def get_fulfillment(self, order_id: str) -> dict[str, Any]:
        return copy.deepcopy(
            {
                "shipping_address": self.addresses.get(str(order_id)),
                "invoice": self.invoices.get(str(order_id)),
                "shipment": self.shipments.get(str(order_id)),
            }
        )

    async def get_item(self, item_id: str) -> dict[str, Any] | None:
        item = self.items.get(str(item_id))
        return copy.deepcopy(item) if item else None

    async def get_offer(self, offer_id: str) -> dict[str, Any] | None:
        offer = self.offers.get(str(offer_id))
        if not offer:
            return None
        item = self.items[offer["order_item_id"]]
        return {**copy.deepcopy(offer), "order_request_id": item["order_request_id"]}

    async def update_offer(self, offer_id: str, expected_version: int, fields: dict[str, Any]) -> dict[str, Any] | None:
        offer = self.offers.get(str(offer_id))
        if not offer or offer["version"] != expected_version:
            return None
        offer.update({k: str(v) if isinstance(v, Decimal) else v for k, v in fields.items()})
        offer["version"] = expected_version + 1
        offer["updated_at"] = _now()
        return copy.deepcopy(offer)

    async def find_pending_payment(self, session_id: str, provider: Any) -> dict[str, Any] | None:
        for payment in self.payments.values():
            if (
                payment["session_id"] == session_id
                and payment["provider"] == provider.value
                and payment["status"] == PaymentStatus.INIT.value
            ):
                return copy.deepcopy(payment)
        return None

    async def get_latest_payment(self, order_id: str) -> dict[str, Any] | None:
        payments = [p for p in self.payments.values() if p["order_request_id"] == str(order_id)]
        return copy.deepcopy(payments[-1]) if payments else None

    async def create_payment(self, payment_data: dict[str, Any]) -> dict[str, Any]:
        payment_id = str(uuid4())
        self.payments[payment_id] = {
            "id": payment_id,
            **{k: str(v) if isinstance(v, Decimal) else v for k, v in payment_data.items()},
            "raw_payload": None,
            "created_at": _now(),
        }
        return copy.deepcopy(self.payments[payment_id])

    async def mark_payment_failed(self, session_id: str, provider: Any, raw_payload: dict[str, Any]) -> dict[str, Any] | None:
        payment = await self.find_pending_payment(session_id, provider)
        if not payment:
            return None
        self.payments[payment["id"]].update(status=PaymentStatus.FAILED.value, raw_payload=raw_payload)
        return copy.deepcopy(self.payments[payment["id"]])

    async def list_comments(self, order_id: str, include_internal: bool) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(c)
            for c in self.comments
            if c["order_request_id"] == str(order_id) and (include_internal or not c["is_internal"])
        ]

    async def create_comment(self, comment_data: dict[str, Any]) -> dict[str, Any]:
        comment = {"id": str(uuid4()), "created_at": _now(), **comment_data}
        self.comments.append(comment)
        return copy.deepcopy(comment)

    async def insert_notification(self, notification: dict[str, Any]) -> None:
        self.notifications.append({"id": str(uuid4()), "is_read": False, "created_at": _now(), **copy.deepcopy(notification)})

    def _in_scope(self, notification: dict[str, Any], scope: NotificationScope) -> bool:
        return (
            (scope.user_id is None or notification["user_id"] == str(scope.user_id))
            and (scope.order_id is None or notification["order_request_id"] == str(scope.order_id))
            and (scope.audience is None or notification["audience"] == scope.audience.value)
        )

    async def list_notifications(
        self, scope: NotificationScope, unread_only: bool = False, limit: int = 20, offset: int = 0
    ) -> list[dict[str, Any]]:
        rows = [
            n for n in reversed(self.notifications) if self._in_scope(n, scope) and not (unread_only and n["is_read"])
        ]
        return copy.deepcopy(rows[offset : offset + limit])

    async def count_unread_notifications(self, scope: NotificationScope) -> int:
        return len([n for n in self.notifications if self._in_scope(n, scope) and not n["is_read"]])

    async def mark_notifications_read(self, scope: NotificationScope, ids: list[str] | None = None) -> int:
        marked = 0
        for notification in self.notifications:
            if notification["is_read"] or not self._in_scope(notification, scope):
                continue
            if ids is not None and notification["id"] not in {str(i) for i in ids}:
                continue
            notification["is_read"] = True
            marked += 1
        return marked

    async def insert_audit_log(self, entry: dict[str, Any]) -> None:
        self.audit_logs.append(copy.deepcopy(entry))

    async def commit(self, change_set: OrderChangeSet) -> CommitResult:
        order = self.orders.get(change_set.order_id)
        if order is None:
            raise NotFoundError("Order not found")

        if self.concurrent_writes:
            self.concurrent_writes -= 1
            order["version"] += 1

        if order["version"] != change_set.expected_version:
            raise StaleOrderVersion(change_set.order_id)

        payload = change_set.to_payload()
        settlement = payload.get("payment_settlement")
        if settlement:
            payment = self.payments.get(settlement["id"])
            if not payment or payment["status"] != PaymentStatus.INIT.value:
                raise PaymentNotPending(change_set.order_id)
            payment.update(status=PaymentStatus.SUCCEEDED.value, raw_payload=settlement["raw_payload"])

        if "offer_delete_id" in payload:
            self.offers.pop(payload["offer_delete_id"], None)

        inserted = None
        if "offer_insert" in payload:
            offer_id = str(uuid4())
            inserted = {
                "id": offer_id,
                "version": 0,
                "created_at": _now(),
                "updated_at": _now(),
                **payload["offer_insert"],
            }
            self.offers[offer_id] = inserted

        for item_id, state in payload["item_states"].items():
            self.items[item_id]["state"] = state

        checkout = payload.get("checkout")
        if checkout:
            self.addresses[order["id"]] = {"order_request_id": order["id"], "kind": "SHIPPING", **checkout["shipping_address"]}
            if checkout.get("invoice"):
                self.invoices[order["id"]] = {"order_request_id": order["id"], "required": True, **checkout["invoice"]}
            self.shipments[order["id"]] = {"order_request_id": order["id"], **checkout["shipment"]}
            for selection in checkout["chosen_offers"]:
                self.chosen[selection["order_item_id"]] = {
                    "id": str(uuid4()),
                    "confirmed_at": _now(),
                    **selection,
                }

        if "status" in payload:
            order["status"] = payload["status"]
        order["version"] += 1
        order["updated_at"] = _now()
        self.commits += 1
        return CommitResult(order=copy.deepcopy(order), offer=copy.deepcopy(inserted))


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    get_settings.cache_clear()


@pytest.fixture
def store() -> InMemoryOrderRepository:
    """Provide an empty in-memory order store."""
    return InMemoryOrderRepository()


@pytest.fixture
def email_service() -> MagicMock:
    """Provide an email service whose send methods are async mocks."""
    service = MagicMock()
    service.send_order_confirmation = AsyncMock(return_value={"success": True})
    service.send_offers_ready = AsyncMock(return_value={"success": True})
    service.send_payment_confirmed = AsyncMock(return_value={"success": True})
    return service


@pytest.fixture
def notifications(store: InMemoryOrderRepository, email_service: MagicMock) -> NotificationService:
    """Provide a notification service writing into the in-memory store."""
    return NotificationService(repository=store, email_service=email_service)


@pytest.fixture
def staff_actor() -> AccessContext:
    return AccessContext(AccessKind.STAFF, user_id=STAFF_ID, role="STAFF")


@pytest.fixture
def owner_actor() -> AccessContext:
    return AccessContext(AccessKind.OWNER, user_id=OWNER_ID, role="USER")


@pytest.fixture
def guest_actor() -> AccessContext:
    return AccessContext(AccessKind.GUEST)


@pytest.fixture
def staff_user() -> UserContext:
    return UserContext(user_id=STAFF_ID, email="staff@partsflow.pl", role="STAFF")


@pytest.fixture
def owner_user() -> UserContext:
    return UserContext(user_id=OWNER_ID, email="owner@example.com", role="USER")


@pytest.fixture
def stranger_user() -> UserContext:
    return UserContext(user_id=STRANGER_ID, email="someone@example.com", role="USER")


@pytest.fixture
def future() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=7)


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def app_with_store(
    store: InMemoryOrderRepository, email_service: MagicMock
) -> Generator[Any, None, None]:
    """Provide the app wired to the in-memory store.

    Yields:
        FastAPI: Application with repository and notification overrides.
    """
    from src.api.deps import get_notification_service, get_order_repository
    from src.main import app

    app.dependency_overrides[get_order_repository] = lambda: store
    def _notifications(background_tasks: BackgroundTasks) -> NotificationService:
        return NotificationService(repository=store, email_service=email_service, background_tasks=background_tasks)

    app.dependency_overrides[get_notification_service] = _notifications
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_with_store: Any) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Yields:
        TestClient: FastAPI test client.
    """
    with TestClient(app_with_store) as test_client:
        yield test_client


@pytest.fixture
def as_user(app_with_store: Any) -> Generator[Any, None, None]:
    """Provide a helper that makes requests authenticate as the given user."""
    from src.api.deps import get_current_user, get_optional_user

    def _as(user: UserContext | None) -> None:
        if user is None:
            app_with_store.dependency_overrides.pop(get_current_user, None)
            app_with_store.dependency_overrides[get_optional_user] = lambda: None
            return
        app_with_store.dependency_overrides[get_current_user] = lambda: user
        app_with_store.dependency_overrides[get_optional_user] = lambda: user

    yield _as
