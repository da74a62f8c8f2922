"""Unit tests for configuration module."""

import os
from decimal import Decimal
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.core.config import Settings, get_settings

REQUIRED_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret",
    "SUPABASE_SIGNING_KEY_JWK": "{}",
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        env_vars = {
            **REQUIRED_ENV,
            "APP_NAME": "test-app",
            "APP_ENV": "testing",
            "DEBUG": "true",
            "HOST": "127.0.0.1",
            "PORT": "9000",
            "CURRENCY": "EUR",
            "SHIPPING_RATE_EXPRESS": "39.90",
            "MAGIC_LINK_TTL_DAYS": "7",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.app_name == "test-app"
            assert settings.app_env == "testing"
            assert settings.debug is True
            assert settings.port == 9000
            assert settings.currency == "eur"
            assert settings.shipping_rate_express == Decimal("39.90")
            assert settings.magic_link_ttl_days == 7

    def test_settings_cors_origins_list(self) -> None:
        env_vars = {**REQUIRED_ENV, "CORS_ORIGINS": "http://localhost:3000, http://example.com , "}

        with patch.dict(os.environ, env_vars, clear=False):
            assert Settings().cors_origins_list == ["http://localhost:3000", "http://example.com"]

    def test_staff_roles_set(self) -> None:
        env_vars = {**REQUIRED_ENV, "STAFF_ROLES": "admin, support,"}

        with patch.dict(os.environ, env_vars, clear=False):
            assert Settings().staff_roles_set == frozenset({"ADMIN", "SUPPORT"})

    def test_settings_is_production_property(self) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, "APP_ENV": "production"}, clear=False):
            assert Settings().is_production is True

        with patch.dict(os.environ, {**REQUIRED_ENV, "APP_ENV": "development"}, clear=False):
            assert Settings().is_production is False

    def test_stripe_test_mode(self) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, "STRIPE_SECRET_KEY": "sk_live_x"}, clear=False):
            assert Settings().is_stripe_test_mode is False

    def test_order_write_retries_must_be_positive(self) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, "ORDER_WRITE_RETRIES": "0"}, clear=False):
            with pytest.raises(ValidationError):
                Settings()

    def test_settings_default_values(self) -> None:
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = Settings(_env_file=None)

            assert settings.app_name == "partsflow-backend"
            assert settings.app_env == "development"
            assert settings.debug is False
            assert settings.port == 8080
            assert settings.currency == "pln"
            assert settings.shipping_rate_standard == Decimal("15.00")
            assert settings.magic_link_ttl_days == 30
            assert settings.order_write_retries == 3
            assert settings.staff_roles_set == frozenset({"STAFF", "ADMIN"})

    def test_settings_validation_error_missing_required(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            error_fields = [e["loc"][0] for e in exc_info.value.errors()]
            assert "supabase_url" in error_fields
            assert "supabase_signing_key_jwk" in error_fields


class TestGetSettings:
    """Tests for get_settings function."""

    def test_get_settings_returns_cached_singleton(self) -> None:
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert isinstance(settings1, Settings)
        assert settings1 is settings2

        get_settings.cache_clear()

    def test_get_settings_cache_can_be_cleared(self) -> None:
        get_settings.cache_clear()

        settings1 = get_settings()
        get_settings.cache_clear()
        settings2 = get_settings()

        assert settings1 is not settings2

        get_settings.cache_clear()
