"""Unit tests for request schema validation."""

import pytest
from pydantic import ValidationError

from src.schemas.auth import LoginRequest
from src.schemas.checkout import ShippingAddress
from src.schemas.order import OrderCreate

MALFORMED_EMAILS = ["jan@example..com", "jan@-example.com", "jan..x@example.com", "jan@", "not-an-email"]

ADDRESS = {
    "first_name": "Jan",
    "last_name": "Kowalski",
    "phone": "+48600100200",
    "line1": "ul. Prosta 1",
    "city": "Warszawa",
    "postal_code": "00-001",
}


def make_order(**overrides) -> OrderCreate:
    data = {"vin": "WVWZZZ1JZXW000001", "items": [{"category_id": "brakes"}]}
    data.update(overrides)
    return OrderCreate.model_validate(data)


class TestOrderCreate:
    """Tests for OrderCreate validation."""

    def test_vin_is_upper_cased(self) -> None:
        assert make_order(vin="wvwzzz1jzxw000001").vin == "WVWZZZ1JZXW000001"

    @pytest.mark.parametrize("vin", ["WVWZZZ1JZXW00000", "WVWZZZ1JZXW00000I", "WVWZZZ1JZXWO00001"])
    def test_invalid_vin_rejected(self, vin: str) -> None:
        with pytest.raises(ValidationError):
            make_order(vin=vin)

    def test_guest_email_accepted(self) -> None:
        assert make_order(guest_email="guest@example.com").guest_email == "guest@example.com"

    @pytest.mark.parametrize("email", MALFORMED_EMAILS)
    def test_malformed_guest_email_rejected(self, email: str) -> None:
        with pytest.raises(ValidationError):
            make_order(guest_email=email)

    def test_items_required(self) -> None:
        with pytest.raises(ValidationError):
            make_order(items=[])


class TestShippingAddress:
    """Tests for ShippingAddress validation."""

    def test_valid_address(self) -> None:
        address = ShippingAddress.model_validate({**ADDRESS, "email": "jan@example.com"})

        assert address.model_dump()["email"] == "jan@example.com"

    @pytest.mark.parametrize("email", MALFORMED_EMAILS)
    def test_malformed_email_rejected(self, email: str) -> None:
        with pytest.raises(ValidationError):
            ShippingAddress.model_validate({**ADDRESS, "email": email})

    def test_postal_code_format(self) -> None:
        with pytest.raises(ValidationError):
            ShippingAddress.model_validate({**ADDRESS, "email": "jan@example.com", "postal_code": "00001"})


class TestLoginRequest:
    """Tests for LoginRequest validation."""

    @pytest.mark.parametrize("email", MALFORMED_EMAILS)
    def test_malformed_email_rejected(self, email: str) -> None:
        with pytest.raises(ValidationError):
            LoginRequest(email=email, password="secret")
