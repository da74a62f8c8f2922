"""Integration tests for webhook API endpoints."""

import json
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import stripe
from fastapi.testclient import TestClient

from src.models.order import ItemState, OrderStatus

WEBHOOK_URL = "/api/v1/webhooks/stripe"


@pytest.fixture
def mock_stripe() -> Generator[MagicMock, None, None]:
    """Patch the Stripe module used for signature verification."""
    with patch("src.services.settlement_service.get_stripe") as mock_get_stripe:
        yield mock_get_stripe.return_value


@pytest.fixture
def paid_setup(store) -> tuple[dict[str, Any], dict[str, Any]]:
    """Order in CHECKOUT with a chosen 150.00 offer and its INIT payment."""
    order, items = store.add_order(status=OrderStatus.CHECKOUT)
    offer = store.add_offer(items[0]["id"], unit_price="150.00")
    store.items[items[0]["id"]]["state"] = ItemState.VALUATED.value
    store.chosen[items[0]["id"]] = {"order_item_id": items[0]["id"], "offer_id": offer["id"]}
    payment = store.add_payment(order["id"], amount="150.00", session_id="cs_test_hook")
    return order, payment


def event_body(
    event_type: str = "checkout.session.completed",
    amount_total: Any = 15000,
    payment_status: str = "paid",
) -> bytes:
    return json.dumps(
        {
            "id": "evt_hook_1",
            "object": "event",
            "type": event_type,
            "data": {
                "object": {
                    "id": "cs_test_hook",
                    "object": "checkout.session",
                    "amount_total": amount_total,
                    "currency": "pln",
                    "payment_status": payment_status,
                }
            },
        }
    ).encode()


def post_event(client: TestClient, body: bytes) -> Any:
    return client.post(WEBHOOK_URL, content=body, headers={"stripe-signature": "t=1,v1=sig"})


class TestStripeWebhook:
    """Tests for POST /api/v1/webhooks/stripe endpoint."""

    def test_settles_payment(self, client: TestClient, store, mock_stripe: MagicMock, paid_setup) -> None:
        order, payment = paid_setup

        response = post_event(client, event_body())

        assert response.status_code == 200
        assert response.json() == {"status": "OK"}
        assert store.orders[order["id"]]["status"] == "PAID"
        assert store.payments[payment["id"]]["status"] == "SUCCEEDED"
        assert set(store.item_states(order["id"]).values()) == {"PURCHASED"}

    def test_confirmation_email_sent_after_acknowledgement(
        self, client: TestClient, store, mock_stripe: MagicMock, paid_setup, email_service: MagicMock
    ) -> None:
        order, _ = paid_setup

        response = post_event(client, event_body())

        assert response.status_code == 200
        email_service.send_payment_confirmed.assert_awaited_once()
        assert email_service.send_payment_confirmed.call_args.kwargs["order_id"] == order["id"]

    def test_redelivery_acknowledged_without_changes(
        self, client: TestClient, store, mock_stripe: MagicMock, paid_setup
    ) -> None:
        post_event(client, event_body())
        after_first = store.snapshot()

        response = post_event(client, event_body())

        assert response.status_code == 200
        assert response.json() == {"status": "OK"}
        assert store.snapshot() == after_first

    def test_amount_mismatch_is_bad_request(
        self, client: TestClient, store, mock_stripe: MagicMock, paid_setup
    ) -> None:
        before = store.snapshot()

        response = post_event(client, event_body(amount_total=100))

        assert response.status_code == 400
        assert response.json()["detail"] == "Amount mismatch"
        assert store.snapshot() == before

    def test_bad_signature_rejected(self, client: TestClient, store, mock_stripe: MagicMock, paid_setup) -> None:
        mock_stripe.Webhook.construct_event.side_effect = stripe.SignatureVerificationError(
            "No signatures found", "t=1,v1=sig"
        )
        before = store.snapshot()

        response = post_event(client, event_body())

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid webhook"
        assert store.snapshot() == before

    def test_missing_signature_header(self, client: TestClient, mock_stripe: MagicMock) -> None:
        response = client.post(WEBHOOK_URL, content=event_body())

        assert response.status_code == 400
        mock_stripe.Webhook.construct_event.assert_not_called()

    def test_malformed_session_rejected(self, client: TestClient, store, mock_stripe: MagicMock, paid_setup) -> None:
        before = store.snapshot()

        response = post_event(client, event_body(amount_total="15000"))

        assert response.status_code == 400
        assert store.snapshot() == before

    def test_unpaid_completion_waits(self, client: TestClient, store, mock_stripe: MagicMock, paid_setup) -> None:
        order, _ = paid_setup

        response = post_event(client, event_body(payment_status="unpaid"))

        assert response.status_code == 200
        assert store.orders[order["id"]]["status"] == "CHECKOUT"

    def test_expired_session_fails_payment(
        self, client: TestClient, store, mock_stripe: MagicMock, paid_setup
    ) -> None:
        _, payment = paid_setup

        response = post_event(client, event_body(event_type="checkout.session.expired"))

        assert response.status_code == 200
        assert store.payments[payment["id"]]["status"] == "FAILED"

    def test_removed_order_is_not_settled(
        self, client: TestClient, store, mock_stripe: MagicMock, paid_setup
    ) -> None:
        order, payment = paid_setup
        store.orders[order["id"]]["status"] = OrderStatus.REMOVED.value

        response = post_event(client, event_body())

        assert response.status_code == 200
        assert store.orders[order["id"]]["status"] == "REMOVED"
        assert store.payments[payment["id"]]["status"] == "INIT"
