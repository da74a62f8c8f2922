"""Checkout assembly and Stripe payment initiation."""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

import stripe

from src.api.middleware.error_handler import (
    AuthorizationError,
    InternalError,
    NotFoundError,
    NotReadyForCheckoutError,
    ValidationError,
)
from src.core.config import Settings, get_settings
from src.core.stripe import get_stripe
from src.models.order import OrderStatus, PaymentProvider, PaymentStatus, ShippingMethod
from src.schemas.checkout import CheckoutRequest
from src.services.access_service import AccessContext
from src.services.notification_service import NotificationService
from src.services.order_repository import OrderAggregate, OrderChangeSet, OrderRepository

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal | str | float) -> int:
    """Convert a major-unit amount to integer minor units (grosze, cents)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class CheckoutPricing:
    """Shop-wide pricing configuration used by checkout and payments."""

    currency: str
    shipping_rates: Mapping[ShippingMethod, Decimal] = field(default_factory=dict)
    free_shipping_threshold: Decimal | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CheckoutPricing":
        return cls(
            currency=settings.currency,
            shipping_rates={
                ShippingMethod.STANDARD: settings.shipping_rate_standard,
                ShippingMethod.EXPRESS: settings.shipping_rate_express,
            },
            free_shipping_threshold=settings.free_shipping_threshold,
        )

    def shipping_price(self, method: ShippingMethod) -> Decimal:
        try:
            return self.shipping_rates[method]
        except KeyError as e:
            raise ValidationError(f"Unsupported shipping method: {method.value}") from e

    def shipment_price(self, method: ShippingMethod, subtotal: Decimal) -> Decimal:
        """Shipping price for a parts subtotal, zero once the free-shipping threshold is reached."""
        price = self.shipping_price(method)
        if self.free_shipping_threshold is not None and subtotal >= self.free_shipping_threshold:
            return Decimal("0.00")
        return price


def items_subtotal(aggregate: OrderAggregate, selections: Mapping[str, str]) -> Decimal:
    """Sum of selected offer unit prices times the requested item quantities."""
    total = Decimal("0")
    for item_id, offer_id in selections.items():
        offer = aggregate.offer(offer_id)
        item = aggregate.item(item_id)
        if offer is None or item is None:
            raise InternalError(f"Chosen offer {offer_id} no longer resolves")
        total += Decimal(str(offer["unit_price"])) * int(item["quantity"])
    return total.quantize(Decimal("0.01"))


def payable_amount(aggregate: OrderAggregate, shipment_price: Decimal) -> Decimal:
    """Sum of chosen offers (unit price times requested quantity) plus shipping."""
    selections = {str(c["order_item_id"]): str(c["offer_id"]) for c in aggregate.chosen_offers}
    return (items_subtotal(aggregate, selections) + Decimal(str(shipment_price))).quantize(Decimal("0.01"))


class CheckoutService:
    """Service validating checkout submissions and starting payments."""

    def __init__(
        self,
        pricing: CheckoutPricing,
        repository: OrderRepository | None = None,
        notifications: NotificationService | None = None,
        attempts: int | None = None,
    ) -> None:
        """Initialize checkout service.

        Args:
            pricing: Currency and shipping rate table.
            repository: Order repository, defaults to the Supabase one.
            notifications: Notification emitter.
            attempts: Optimistic write attempts.
        """
        self.pricing = pricing
        self.repository = repository or OrderRepository()
        self.notifications = notifications or NotificationService(repository=self.repository)
        self.attempts = attempts or get_settings().order_write_retries
        self.stripe = get_stripe()

    def build_checkout(self, aggregate: OrderAggregate, request: CheckoutRequest) -> OrderChangeSet:
        """Validate a submission against a snapshot and build its change set."""
        if aggregate.status != OrderStatus.VALUATED:
            raise NotReadyForCheckoutError(aggregate.status.value)

        selections: dict[str, str] = {}
        for selection in request.selected_offers:
            if not selection.include:
                continue
            item_id = str(selection.order_item_id)
            offer_id = str(selection.offer_id)
            if aggregate.item(item_id) is None:
                raise ValidationError(f"Item {item_id} does not belong to this order")
            offer = aggregate.offer(offer_id)
            if offer is None or str(offer["order_item_id"]) != item_id:
                raise ValidationError(f"Offer {offer_id} is not available for item {item_id}")
            selections[item_id] = offer_id

        if not selections:
            raise ValidationError("Select at least one offer")

        # Earlier chosen offers stay in place for items left out of this submission.
        chosen = {str(c["order_item_id"]): str(c["offer_id"]) for c in aggregate.chosen_offers}
        subtotal = items_subtotal(aggregate, {**chosen, **selections})

        invoice = request.invoice
        method = request.shipping_method
        return OrderChangeSet(
            order_id=aggregate.id,
            expected_version=aggregate.version,
            status=OrderStatus.CHECKOUT,
            checkout={
                "shipping_address": request.shipping_address.model_dump(),
                "invoice": (
                    {"company_name": invoice.company_name, "nip": invoice.nip}
                    if invoice and invoice.required
                    else None
                ),
                "shipment": {
                    "method": method.value,
                    "price": self.pricing.shipment_price(method, subtotal),
                },
                "chosen_offers": [
                    {"order_item_id": item_id, "offer_id": offer_id}
                    for item_id, offer_id in selections.items()
                ],
            },
        )

    async def checkout(
        self, order_id: str, actor: AccessContext, request: CheckoutRequest
    ) -> dict[str, Any]:
        """Persist a checkout submission and move the order to CHECKOUT.

        Address, optional invoice, shipment, chosen offers and the status
        change are committed as one change set.

        Returns:
            dict: The updated order row.

        Raises:
            AuthorizationError: If the actor is not the owner or a guest.
            NotReadyForCheckoutError: If the order is not VALUATED.
            ValidationError: If a selection does not belong to the order.
        """
        if not actor.is_buyer:
            raise AuthorizationError("Only the buyer can check out an order")

        try:
            _, result = await self.repository.apply(
                order_id, lambda snapshot: self.build_checkout(snapshot, request), self.attempts
            )
        except NotReadyForCheckoutError as e:
            logger.warning("Checkout rejected for order %s: %s", order_id, e.message)
            raise

        chosen = [s for s in request.selected_offers if s.include]
        logger.info(
            "Order %s checked out by %s with %d offer(s), %s shipping",
            order_id,
            actor.actor_label,
            len({s.order_item_id for s in chosen}),
            request.shipping_method.value,
        )
        await self.notifications.checkout_submitted(
            result.order,
            len({s.order_item_id for s in chosen}),
            request.shipping_method.value,
            actor,
        )
        return result.order

    async def create_payment_session(
        self,
        order_id: str,
        actor: AccessContext,
        success_url: str,
        cancel_url: str,
    ) -> dict[str, Any]:
        """Create a Stripe Checkout Session and an INIT payment for an order.

        Returns:
            dict: Contains checkout_url, payment_id, session_id, amount, currency.

        Raises:
            AuthorizationError: If the actor is not the owner or a guest.
            NotReadyForCheckoutError: If the order is not in CHECKOUT.
            InternalError: If Stripe is not configured or rejects the session.
        """
        if not actor.is_buyer:
            raise AuthorizationError("Only the buyer can pay for an order")

        settings = get_settings()
        if not settings.stripe_secret_key:
            raise InternalError("Payments are not configured")

        aggregate = await self.repository.load_aggregate(order_id)
        if aggregate is None:
            raise NotFoundError("Order not found")
        if aggregate.status != OrderStatus.CHECKOUT:
            raise NotReadyForCheckoutError(aggregate.status.value)

        fulfillment = await self.repository.get_fulfillment(order_id)
        shipment = fulfillment.get("shipment")
        if not shipment:
            raise InternalError(f"Order {order_id} is in CHECKOUT without a shipment")

        amount = payable_amount(aggregate, Decimal(str(shipment["price"])))
        currency = self.pricing.currency

        line_items: list[dict[str, Any]] = []
        for chosen in aggregate.chosen_offers:
            offer = aggregate.offer(str(chosen["offer_id"])) or {}
            item = aggregate.item(str(chosen["order_item_id"])) or {}
            line_items.append(
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": to_minor_units(offer["unit_price"]),
                        "product_data": {"name": f"{item.get('category_id')} - {offer.get('manufacturer')}"},
                    },
                    "quantity": int(item["quantity"]),
                }
            )
        if to_minor_units(shipment["price"]) > 0:
            line_items.append(
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": to_minor_units(shipment["price"]),
                        "product_data": {"name": f"Shipping ({shipment['method'].lower()})"},
                    },
                    "quantity": 1,
                }
            )

        checkout_params: dict[str, Any] = {
            "mode": "payment",
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": aggregate.id,
            "metadata": {"order_id": aggregate.id},
        }
        if aggregate.order.get("contact_email"):
            checkout_params["customer_email"] = aggregate.order["contact_email"]

        try:
            session = self.stripe.checkout.Session.create(**checkout_params)
        except stripe.StripeError as e:
            logger.error("Stripe error creating payment session for order %s: %s", order_id, str(e))
            raise InternalError("Payment provider unavailable") from e

        payment = await self.repository.create_payment(
            {
                "order_request_id": aggregate.id,
                "provider": PaymentProvider.STRIPE.value,
                "session_id": session.id,
                "amount": amount,
                "currency": currency,
                "status": PaymentStatus.INIT.value,
            }
        )
        logger.info(
            "Payment %s (%s %s) started for order %s, session %s",
            payment["id"],
            amount,
            currency,
            order_id,
            session.id,
        )
        await self.notifications.payment_initiated(aggregate.order, payment, actor)

        return {
            "checkout_url": session.url,
            "payment_id": payment["id"],
            "session_id": session.id,
            "amount": amount,
            "currency": currency,
        }
