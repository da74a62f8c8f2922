"""Authentication business logic service."""

import logging
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import AuthenticationError
from src.core.supabase import create_auth_client
from src.services.order_repository import OrderRepository

logger = logging.getLogger(__name__)


class AuthService:
    """Service for signing users in through Supabase Auth."""

    def __init__(self, repository: OrderRepository | None = None) -> None:
        """Initialize auth service with isolated Supabase client.

        Uses create_auth_client() instead of get_supabase_client() to avoid
        polluting the singleton client's Authorization header when auth
        operations call set_session().
        """
        self.client = create_auth_client()
        self.repository = repository

    async def link_guest_orders(self, email: str, user_id: UUID) -> int:
        """Attach guest orders placed with ``email`` to the user.

        Best-effort: any failure is logged and reported as zero linked
        orders, the sign-in itself is never affected.
        """
        try:
            repository = self.repository or OrderRepository()
            linked = await repository.link_guest_orders(email, user_id)
        except Exception:
            logger.exception("Failed to link guest orders for user %s", user_id)
            return 0

        if linked:
            logger.info("Linked %d guest order(s) to user %s", linked, user_id)
        return linked

    async def login(
        self,
        email: str,
        password: str,
    ) -> dict[str, Any]:
        """Login user with email and password.

        Args:
            email: User's email address.
            password: User's password.

        Returns:
            dict: Login response with access_token, refresh_token, user info
                and the number of guest orders linked to the account.

        Raises:
            AuthenticationError: If login fails.
        """
        try:
            response = self.client.auth.sign_in_with_password(
                {
                    "email": email,
                    "password": password,
                }
            )
        except Exception as e:
            error_msg = str(e)
            logger.warning("Login failed: %s", error_msg)

            if "email not confirmed" in error_msg.lower() or "not verified" in error_msg.lower():
                raise AuthenticationError("Please verify your email before logging in") from e
            raise AuthenticationError("Invalid email or password") from e

        if not response.user or not response.session:
            raise AuthenticationError("Login failed: No session created")

        user = response.user
        session = response.session
        user_email = user.email or email
        logger.info("User logged in: %s", user.id)

        linked = await self.link_guest_orders(user_email, UUID(str(user.id)))

        return {
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "user_id": str(user.id),
            "email": user_email,
            "expires_in": session.expires_in or 3600,
            "linked_orders": linked,
        }
