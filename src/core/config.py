"""Application configuration management using Pydantic Settings."""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="partsflow-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")

    # Roles
    staff_roles: str = Field(default="STAFF,ADMIN", description="Comma-separated roles with full order access")

    # Orders
    magic_link_ttl_days: int = Field(default=30, description="Days a guest capability link stays valid")
    order_write_retries: int = Field(default=3, ge=1, description="Attempts for an order write before reporting a conflict")

    # Checkout pricing
    currency: str = Field(default="pln", description="ISO currency code used for offers and payments")
    shipping_rate_standard: Decimal = Field(default=Decimal("15.00"), description="Standard shipping price")
    shipping_rate_express: Decimal = Field(default=Decimal("25.00"), description="Express shipping price")
    free_shipping_threshold: Decimal | None = Field(
        default=Decimal("500.00"),
        description="Chosen parts subtotal from which shipping is free, unset disables it",
    )

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="PartsFlow <noreply@partsflow.pl>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Frontend application URL for email links",
    )

    @model_validator(mode="after")
    def normalize_currency(self) -> "Settings":
        """Store the currency in the lower-case form Stripe uses."""
        self.currency = self.currency.lower()
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def staff_roles_set(self) -> frozenset[str]:
        """Parse staff roles string into an upper-cased set."""
        return frozenset(role.strip().upper() for role in self.staff_roles.split(",") if role.strip())

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
