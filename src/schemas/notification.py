"""Notification inbox Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_request_id: UUID
    type: str
    title: str
    body: str
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    """One page of an inbox."""

    notifications: list[NotificationResponse]
    unread_count: int = Field(description="Unread notifications in the whole inbox, not just this page")
    has_more: bool


class NotificationMarkRead(BaseModel):
    """Request schema for marking notifications as read."""

    ids: list[UUID] | None = Field(default=None, min_length=1, description="Notifications to mark")
    mark_all: bool = Field(default=False, description="Mark every unread notification in the inbox")

    @model_validator(mode="after")
    def _one_target(self) -> "NotificationMarkRead":
        if self.mark_all == (self.ids is not None):
            raise ValueError("Provide either ids or mark_all")
        return self


class NotificationMarkReadResponse(BaseModel):
    updated: int
