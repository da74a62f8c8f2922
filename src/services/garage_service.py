"""Saved vehicles ("garage") of signed-in users."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from postgrest.exceptions import APIError as PostgrestAPIError

from src.api.middleware.error_handler import AuthorizationError, NotFoundError, ValidationError
from src.core.supabase import get_supabase_client

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class GarageService:
    """Service for managing the VINs a user keeps for repeat orders."""

    def __init__(self) -> None:
        """Initialize garage service with Supabase client."""
        self.client = get_supabase_client()

    async def list_vins(self, user_id: UUID) -> list[dict[str, Any]]:
        """Get the user's saved VINs, newest first."""
        response = (
            self.client.table("garage_vins")
            .select("*")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .execute()
        )

        return response.data or []

    async def save_vin(self, user_id: UUID, vin: str, label: str | None = None) -> dict[str, Any]:
        """Save a VIN to the user's garage.

        Without a label the vehicle is called "Car N", N counting the
        vehicles already saved.

        Raises:
            ValidationError: If the VIN is already in the user's garage.
        """
        existing = (
            self.client.table("garage_vins")
            .select("id")
            .eq("user_id", str(user_id))
            .eq("vin", vin)
            .execute()
        )
        if existing.data:
            raise ValidationError("This VIN is already in your garage")

        if not label:
            count_response = (
                self.client.table("garage_vins")
                .select("id", count="exact")
                .eq("user_id", str(user_id))
                .execute()
            )
            label = f"Car {(count_response.count or 0) + 1}"

        try:
            response = (
                self.client.table("garage_vins")
                .insert({"user_id": str(user_id), "vin": vin, "label": label})
                .execute()
            )
        except PostgrestAPIError as e:
            # Concurrent save of the same VIN lost the race on the unique key
            if e.code == UNIQUE_VIOLATION:
                raise ValidationError("This VIN is already in your garage") from e
            raise

        logger.info("Saved VIN %s to garage of user %s", vin, user_id)
        return response.data[0]

    async def _get_own_vin(self, user_id: UUID, vin_id: UUID) -> dict[str, Any]:
        response = (
            self.client.table("garage_vins")
            .select("*")
            .eq("id", str(vin_id))
            .maybe_single()
            .execute()
        )

        garage_vin = response.data if response and response.data else None
        if not garage_vin:
            raise NotFoundError("VIN not found")
        if str(garage_vin["user_id"]) != str(user_id):
            raise AuthorizationError("You can only manage your own VINs")
        return garage_vin

    async def rename_vin(self, user_id: UUID, vin_id: UUID, label: str) -> dict[str, Any]:
        """Change the label of a saved VIN.

        Raises:
            NotFoundError: If the VIN does not exist.
            AuthorizationError: If the VIN belongs to someone else.
        """
        await self._get_own_vin(user_id, vin_id)

        response = (
            self.client.table("garage_vins")
            .update({"label": label, "updated_at": datetime.now(timezone.utc).isoformat()})
            .eq("id", str(vin_id))
            .execute()
        )

        return response.data[0]

    async def delete_vin(self, user_id: UUID, vin_id: UUID) -> None:
        """Remove a VIN from the user's garage.

        Raises:
            NotFoundError: If the VIN does not exist.
            AuthorizationError: If the VIN belongs to someone else.
        """
        await self._get_own_vin(user_id, vin_id)

        self.client.table("garage_vins").delete().eq("id", str(vin_id)).execute()
        logger.info("Removed VIN %s from garage of user %s", vin_id, user_id)
