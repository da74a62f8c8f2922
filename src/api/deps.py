"""FastAPI dependency injection functions."""

from dataclasses import dataclass
from typing import Annotated, Any
from uuid import UUID

from fastapi import BackgroundTasks, Depends, Header, Path, Query

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.api.middleware.error_handler import AuthenticationError, AuthorizationError, NotFoundError
from src.core.config import get_settings
from src.schemas.auth import UserContext
from src.services.access_service import AccessContext, AccessKind, require_order_access, resolve_access
from src.services.checkout_service import CheckoutPricing, CheckoutService
from src.services.garage_service import GarageService
from src.services.inbox_service import NotificationInbox
from src.services.notification_service import NotificationService
from src.services.offer_service import OfferLedger
from src.services.order_repository import OrderRepository
from src.services.order_service import OrderService
from src.services.order_state_machine import OrderStateMachine
from src.services.settlement_service import SettlementService


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        AuthenticationError: If token is missing, invalid, or expired.
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    # Extract the token from "Bearer <token>" format
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Invalid authorization header format. Expected: Bearer <token>")

    try:
        payload = decode_jwt(parts[1])
        return payload.to_user_context()

    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise AuthenticationError("Token has expired") from e
        raise AuthenticationError(e.message) from e


async def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
) -> UserContext | None:
    """Extract the current user if an Authorization header is present.

    Returns None without a header; a present but invalid token still fails.
    """
    if not authorization:
        return None
    return await get_current_user(authorization)


CurrentUser = Annotated[UserContext, Depends(get_current_user)]
OptionalUser = Annotated[UserContext | None, Depends(get_optional_user)]


async def get_staff_user(user: CurrentUser) -> UserContext:
    """Require an authenticated user holding a staff role."""
    if user.role.upper() not in get_settings().staff_roles_set:
        raise AuthorizationError("Staff role required")
    return user


StaffUser = Annotated[UserContext, Depends(get_staff_user)]


async def get_staff_context(user: StaffUser) -> AccessContext:
    """Access context for staff endpoints that are not bound to one order."""
    return AccessContext(AccessKind.STAFF, user_id=user.user_id, role=user.role.upper())


StaffContext = Annotated[AccessContext, Depends(get_staff_context)]


def get_capability_token(
    token: Annotated[str | None, Query(description="Magic link token")] = None,
    x_order_token: Annotated[str | None, Header()] = None,
) -> str | None:
    """Read the magic link token from the ``token`` query or ``X-Order-Token`` header."""
    return x_order_token or token


CapabilityToken = Annotated[str | None, Depends(get_capability_token)]


# Services


def get_order_repository() -> OrderRepository:
    return OrderRepository()


Repository = Annotated[OrderRepository, Depends(get_order_repository)]


def get_notification_service(repository: Repository, background_tasks: BackgroundTasks) -> NotificationService:
    """Notification service that sends emails after the response is returned."""
    return NotificationService(repository=repository, background_tasks=background_tasks)


Notifications = Annotated[NotificationService, Depends(get_notification_service)]


def get_checkout_pricing() -> CheckoutPricing:
    """Build the pricing value object from settings for each request."""
    return CheckoutPricing.from_settings(get_settings())


def get_order_service(repository: Repository, notifications: Notifications) -> OrderService:
    return OrderService(repository=repository, notifications=notifications)


def get_offer_ledger(repository: Repository, notifications: Notifications) -> OfferLedger:
    return OfferLedger(repository=repository, notifications=notifications)


def get_state_machine(repository: Repository, notifications: Notifications) -> OrderStateMachine:
    return OrderStateMachine(repository=repository, notifications=notifications)


def get_checkout_service(
    pricing: Annotated[CheckoutPricing, Depends(get_checkout_pricing)],
    repository: Repository,
    notifications: Notifications,
) -> CheckoutService:
    return CheckoutService(pricing, repository=repository, notifications=notifications)


def get_settlement_service(repository: Repository, notifications: Notifications) -> SettlementService:
    return SettlementService(repository=repository, notifications=notifications)


def get_notification_inbox(repository: Repository) -> NotificationInbox:
    return NotificationInbox(repository=repository)


def get_garage_service() -> GarageService:
    return GarageService()


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
OfferLedgerDep = Annotated[OfferLedger, Depends(get_offer_ledger)]
StateMachineDep = Annotated[OrderStateMachine, Depends(get_state_machine)]
CheckoutServiceDep = Annotated[CheckoutService, Depends(get_checkout_service)]
SettlementServiceDep = Annotated[SettlementService, Depends(get_settlement_service)]
NotificationInboxDep = Annotated[NotificationInbox, Depends(get_notification_inbox)]
GarageServiceDep = Annotated[GarageService, Depends(get_garage_service)]


# Order access


@dataclass
class OrderAccess:
    """An order row together with the caller's resolved access context."""

    order: dict[str, Any]
    context: AccessContext


async def get_order_access(
    order_id: Annotated[UUID, Path(description="Order UUID")],
    user: OptionalUser,
    token: CapabilityToken,
    repository: Repository,
) -> OrderAccess:
    """Resolve and enforce access to the order in the path.

    Evaluated on every request, the magic link expiry included.

    Anonymous callers cannot tell a missing order from a bad token.

    Raises:
        NotFoundError: If an authenticated caller asks for a missing order.
        AuthenticationError: No identity proof, or an invalid/expired token.
        AuthorizationError: Authenticated but neither owner nor staff.
    """
    if user is None and not token:
        raise AuthenticationError("Authentication required")

    order = await repository.get_order(str(order_id))
    if not order:
        if user is None:
            raise AuthenticationError("Invalid or expired magic link")
        raise NotFoundError("Order not found")

    context = resolve_access(order, user, token, staff_roles=get_settings().staff_roles_set)
    return OrderAccess(order=order, context=require_order_access(context))


OrderAccessDep = Annotated[OrderAccess, Depends(get_order_access)]
