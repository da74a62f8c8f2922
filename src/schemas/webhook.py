"""Strictly typed Stripe webhook payloads.

Only the fields settlement relies on are declared; they are validated with
strict types so a string amount or a missing session id is rejected before
it reaches the settlement service. Unrelated provider fields are ignored.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr

CHECKOUT_COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
CHECKOUT_EXPIRED = "checkout.session.expired"

SETTLEMENT_EVENTS = frozenset({CHECKOUT_COMPLETED, ASYNC_PAYMENT_SUCCEEDED})
FAILURE_EVENTS = frozenset({ASYNC_PAYMENT_FAILED, CHECKOUT_EXPIRED})


class CheckoutSessionObject(BaseModel):
    """The Checkout Session carried by ``data.object``."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: StrictStr = Field(min_length=1)
    object: StrictStr = Field(pattern=r"^checkout\.session$")
    amount_total: StrictInt | None = Field(default=None, ge=0)
    currency: StrictStr | None = None
    payment_status: StrictStr | None = None
    client_reference_id: StrictStr | None = None
    metadata: dict[StrictStr, StrictStr] = Field(default_factory=dict)


class CheckoutSessionEventData(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    object: CheckoutSessionObject


class StripeEvent(BaseModel):
    """Envelope of a Stripe event; ``data`` is kept raw until the type is known."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: StrictStr = Field(min_length=1)
    type: StrictStr = Field(min_length=1)
    livemode: StrictBool = False
    data: dict[str, Any]


class CheckoutSessionEvent(StripeEvent):
    """A ``checkout.session.*`` event with a validated session object."""

    data: CheckoutSessionEventData  # type: ignore[assignment]

    @property
    def session(self) -> CheckoutSessionObject:
        return self.data.object
