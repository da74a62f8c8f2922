"""Checkout and payment Pydantic schemas for API request/response models."""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator, model_validator

from src.models.order import ShippingMethod

POSTAL_CODE_PATTERN = r"^\d{2}-\d{3}$"

NIP_WEIGHTS = (6, 5, 7, 2, 3, 4, 5, 6, 7)


def is_valid_nip(nip: str) -> bool:
    """Check a 10-digit Polish tax id against its checksum digit."""
    digits = nip.replace("-", "").replace(" ", "")
    if len(digits) != 10 or not digits.isdigit():
        return False
    checksum = sum(int(d) * w for d, w in zip(digits, NIP_WEIGHTS)) % 11
    return checksum != 10 and checksum == int(digits[9])


class ShippingAddress(BaseModel):
    """Delivery address submitted at checkout."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=6, max_length=20)
    email: EmailStr
    line1: str = Field(min_length=1, max_length=200)
    line2: str | None = Field(default=None, max_length=200)
    city: str = Field(min_length=1, max_length=100)
    postal_code: str = Field(pattern=POSTAL_CODE_PATTERN, description="Postal code, NN-NNN")
    country: str = Field(default="PL", min_length=2, max_length=2)


class InvoiceDetails(BaseModel):
    """Company invoice request. Company name and a valid NIP are required when ``required`` is set."""

    model_config = ConfigDict(str_strip_whitespace=True)

    required: bool = Field(default=False, description="Whether a VAT invoice is requested")
    company_name: str | None = Field(default=None, max_length=200)
    nip: str | None = Field(default=None, description="Polish tax identification number")

    @model_validator(mode="after")
    def check_company(self) -> "InvoiceDetails":
        if not self.required:
            return self
        if not self.company_name:
            raise ValueError("Company name is required for an invoice")
        if not self.nip or not is_valid_nip(self.nip):
            raise ValueError("Invalid NIP")
        self.nip = self.nip.replace("-", "").replace(" ", "")
        return self


class OfferSelection(BaseModel):
    """Buyer's decision for one order item."""

    order_item_id: UUID
    offer_id: UUID
    include: bool = Field(default=True, description="Only included selections become chosen offers")


class CheckoutRequest(BaseModel):
    """Schema for POST /orders/{id}/checkout."""

    shipping_address: ShippingAddress
    invoice: InvoiceDetails | None = None
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    selected_offers: list[OfferSelection] = Field(min_length=1)
    accept_terms: bool = Field(description="Buyer accepted the terms of sale")
    accept_privacy: bool = Field(description="Buyer accepted the privacy policy")

    @field_validator("accept_terms", "accept_privacy")
    @classmethod
    def must_accept(cls, value: bool) -> bool:
        if not value:
            raise ValueError("Must be accepted to place the order")
        return value


class PaymentSessionCreate(BaseModel):
    """Schema for POST /orders/{id}/payments."""

    success_url: HttpUrl = Field(description="URL to redirect after successful payment")
    cancel_url: HttpUrl = Field(description="URL to redirect if payment is cancelled")


class PaymentSessionResponse(BaseModel):
    """Schema for payment session creation response."""

    model_config = ConfigDict(from_attributes=True)

    checkout_url: str = Field(description="Stripe Checkout URL to redirect to")
    payment_id: UUID = Field(description="Created payment attempt UUID")
    session_id: str = Field(description="Stripe Checkout Session ID")
    amount: Decimal = Field(description="Amount to pay in major units")
    currency: str = Field(description="Currency code")
