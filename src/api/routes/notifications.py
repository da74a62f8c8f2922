"""Notification inbox routes for signed-in buyers and magic link guests."""

from typing import Annotated

from fastapi import APIRouter, Query

from src.api.deps import CurrentUser, NotificationInboxDep, OrderAccessDep
from src.schemas.notification import (
    NotificationListResponse,
    NotificationMarkRead,
    NotificationMarkReadResponse,
)
from src.services.inbox_service import order_scope, user_scope

router = APIRouter(tags=["notifications"])

UnreadOnly = Annotated[bool, Query(description="Only return unread notifications")]
Limit = Annotated[int, Query(ge=1, le=100, description="Page size")]
Offset = Annotated[int, Query(ge=0, description="Notifications to skip")]


@router.get(
    "/notifications",
    response_model=NotificationListResponse,
    summary="List my notifications",
    description="Notifications addressed to the authenticated user across all orders, newest first.",
)
async def list_my_notifications(
    user: CurrentUser,
    inbox: NotificationInboxDep,
    unread_only: UnreadOnly = False,
    limit: Limit = 20,
    offset: Offset = 0,
) -> NotificationListResponse:
    page = await inbox.page(user_scope(user), unread_only, limit, offset)
    return NotificationListResponse.model_validate(page)


@router.patch(
    "/notifications",
    response_model=NotificationMarkReadResponse,
    summary="Mark my notifications as read",
)
async def mark_my_notifications_read(
    data: NotificationMarkRead, user: CurrentUser, inbox: NotificationInboxDep
) -> NotificationMarkReadResponse:
    updated = await inbox.mark_read(user_scope(user), user, data.ids)
    return NotificationMarkReadResponse(updated=updated)


@router.get(
    "/orders/{order_id}/notifications",
    response_model=NotificationListResponse,
    summary="List order notifications",
    description="The order's notification feed. Guests authenticate with their magic link token.",
)
async def list_order_notifications(
    access: OrderAccessDep,
    inbox: NotificationInboxDep,
    unread_only: UnreadOnly = False,
    limit: Limit = 20,
    offset: Offset = 0,
) -> NotificationListResponse:
    scope = order_scope(str(access.order["id"]), access.context)
    page = await inbox.page(scope, unread_only, limit, offset)
    return NotificationListResponse.model_validate(page)


@router.patch(
    "/orders/{order_id}/notifications",
    response_model=NotificationMarkReadResponse,
    summary="Mark order notifications as read",
    description="Only the buyer the notifications are addressed to can mark them as read.",
)
async def mark_order_notifications_read(
    data: NotificationMarkRead, access: OrderAccessDep, inbox: NotificationInboxDep
) -> NotificationMarkReadResponse:
    """Mark notifications of one order as read.

    Raises:
        AuthorizationError: 403 for staff callers.
    """
    scope = order_scope(str(access.order["id"]), access.context)
    updated = await inbox.mark_read(scope, access.context, data.ids)
    return NotificationMarkReadResponse(updated=updated)
