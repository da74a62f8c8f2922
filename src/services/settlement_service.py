"""Settlement of provider payment confirmations."""

import json
import logging
from typing import Any

import stripe
from pydantic import ValidationError as PydanticValidationError

from src.api.middleware.error_handler import AmountMismatchError, PaymentNotFoundError
from src.core.config import get_settings
from src.core.stripe import get_stripe
from src.models.order import OrderStatus, PaymentProvider
from src.schemas.webhook import (
    CHECKOUT_COMPLETED,
    FAILURE_EVENTS,
    SETTLEMENT_EVENTS,
    CheckoutSessionEvent,
    StripeEvent,
)
from src.services.checkout_service import to_minor_units
from src.services.notification_service import NotificationService
from src.services.order_repository import (
    OrderAggregate,
    OrderChangeSet,
    OrderRepository,
    PaymentNotPending,
)
from src.services.order_state_machine import paid_item_states

logger = logging.getLogger(__name__)

# Orders in these states never accept a settlement, even for a pending payment.
UNSETTLEABLE = frozenset({OrderStatus.PAID, OrderStatus.REMOVED})


def build_settlement(
    aggregate: OrderAggregate, payment: dict[str, Any], provider_payload: dict[str, Any]
) -> OrderChangeSet:
    """Payment SUCCEEDED, order PAID and the bulk item outcomes in one change set."""
    if aggregate.status in UNSETTLEABLE:
        raise PaymentNotFoundError(f"Order is {aggregate.status.value}, payment not settled")
    return OrderChangeSet(
        order_id=aggregate.id,
        expected_version=aggregate.version,
        status=OrderStatus.PAID,
        item_states=paid_item_states(aggregate),
        payment_settlement={"id": str(payment["id"]), "raw_payload": provider_payload},
    )


class SettlementService:
    """Reconciles provider webhooks against pending payments.

    Every precondition is checked before anything is written, so a failed
    or repeated delivery leaves all rows untouched.
    """

    def __init__(
        self,
        repository: OrderRepository | None = None,
        notifications: NotificationService | None = None,
        attempts: int | None = None,
        provider: PaymentProvider = PaymentProvider.STRIPE,
    ) -> None:
        self.repository = repository or OrderRepository()
        self.notifications = notifications or NotificationService(repository=self.repository)
        self.attempts = attempts or get_settings().order_write_retries
        self.provider = provider
        self.stripe = get_stripe()

    def verify_webhook_signature(self, payload: bytes, sig_header: str) -> None:
        """Verify the Stripe-Signature header of a raw webhook body.

        Raises:
            ValueError: If the secret is missing or the signature is invalid.
        """
        secret = get_settings().stripe_webhook_secret
        if not secret:
            raise ValueError("Stripe webhook secret is not configured")

        try:
            self.stripe.Webhook.construct_event(payload, sig_header, secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise ValueError("Invalid webhook signature") from e

    @staticmethod
    def parse_event(payload: bytes) -> tuple[StripeEvent, dict[str, Any]]:
        """Parse a verified body into the strict event model.

        Returns:
            tuple: The validated envelope and the raw JSON document.

        Raises:
            ValueError: If the body is not JSON or does not match the model.
        """
        try:
            raw = json.loads(payload)
            return StripeEvent.model_validate(raw), raw
        except (json.JSONDecodeError, UnicodeDecodeError, PydanticValidationError) as e:
            raise ValueError(f"Malformed webhook payload: {e}") from e

    async def settle(
        self,
        session_id: str,
        amount_minor_units: int,
        currency: str,
        provider_payload: dict[str, Any],
    ) -> dict[str, Any]:
        """Settle the pending payment of a provider session exactly once.

        Args:
            session_id: Provider checkout session id.
            amount_minor_units: Amount the provider confirmed, in minor units.
            currency: Currency the provider confirmed.
            provider_payload: Raw event stored with the payment.

        Returns:
            dict: The updated order row.

        Raises:
            PaymentNotFoundError: No INIT payment for the session, the order
                is PAID or REMOVED, or another delivery settled it first.
            AmountMismatchError: Amount or currency differ from the payment.
        """
        payment = await self.repository.find_pending_payment(session_id, self.provider)
        if not payment:
            logger.info("No pending %s payment for session %s", self.provider.value, session_id)
            raise PaymentNotFoundError()

        expected = to_minor_units(payment["amount"])
        if amount_minor_units != expected:
            logger.warning(
                "Amount mismatch for payment %s: expected %d, received %d",
                payment["id"],
                expected,
                amount_minor_units,
            )
            raise AmountMismatchError(expected, amount_minor_units)

        if str(currency).lower() != str(payment["currency"]).lower():
            logger.warning(
                "Currency mismatch for payment %s: expected %s, received %s",
                payment["id"],
                payment["currency"],
                currency,
            )
            raise AmountMismatchError(expected, amount_minor_units, "Currency mismatch")

        order_id = str(payment["order_request_id"])
        try:
            aggregate, result = await self.repository.apply(
                order_id,
                lambda snapshot: build_settlement(snapshot, payment, provider_payload),
                self.attempts,
            )
        except PaymentNotPending as e:
            logger.info("Payment %s was settled by a concurrent delivery", payment["id"])
            raise PaymentNotFoundError() from e

        logger.info(
            "Payment %s settled, order %s %s -> PAID",
            payment["id"],
            order_id,
            aggregate.status.value,
        )
        await self.notifications.payment_succeeded(result.order, payment, aggregate.status)
        return result.order

    async def mark_failed(
        self, session_id: str, provider_payload: dict[str, Any], reason: str
    ) -> dict[str, Any] | None:
        """Mark a still-pending payment FAILED; a no-op for anything else."""
        payment = await self.repository.mark_payment_failed(session_id, self.provider, provider_payload)
        if not payment:
            logger.info("No pending payment to fail for session %s (%s)", session_id, reason)
            return None

        logger.info("Payment %s marked FAILED (%s)", payment["id"], reason)
        order = await self.repository.get_order(str(payment["order_request_id"]))
        if order:
            await self.notifications.payment_failed(order, payment, reason)
        return payment

    async def handle_event(self, event: StripeEvent, raw: dict[str, Any]) -> str:
        """Dispatch a verified event.

        Returns:
            str: Outcome label for logging: settled, failed, pending or ignored.

        Raises:
            ValueError: If a checkout session event is malformed.
            PaymentNotFoundError, AmountMismatchError: From ``settle``.
        """
        if event.type not in SETTLEMENT_EVENTS and event.type not in FAILURE_EVENTS:
            logger.debug("Ignoring webhook event type %s", event.type)
            return "ignored"

        try:
            session_event = CheckoutSessionEvent.model_validate(raw)
        except PydanticValidationError as e:
            raise ValueError(f"Malformed checkout session event: {e}") from e
        session = session_event.session

        if event.type in FAILURE_EVENTS:
            await self.mark_failed(session.id, raw, event.type)
            return "failed"

        if event.type == CHECKOUT_COMPLETED and session.payment_status != "paid":
            logger.info(
                "Session %s completed with payment_status=%s, awaiting async confirmation",
                session.id,
                session.payment_status,
            )
            return "pending"

        if session.amount_total is None or session.currency is None:
            raise ValueError("Checkout session is missing amount_total or currency")

        await self.settle(session.id, session.amount_total, session.currency, raw)
        return "settled"
