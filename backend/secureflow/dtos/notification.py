"""DTOs for the notification API."""

from datetime import datetime
from typing import List, Optional

from secureflow.entities.notification import Notification

from .base import CamelModel


class NotificationResponse(CamelModel):
    """Response DTO for a single notification."""

    id: str
    type: str
    title: str
    message: str
    is_read: bool
    link: Optional[str] = None
    metadata: Optional[dict] = None
    created_at: datetime

    @classmethod
    def from_entity(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=str(notification.id),
            type=notification.type,
            title=notification.title,
            message=notification.message,
            is_read=notification.is_read,
            link=notification.link,
            metadata=notification.metadata,
            created_at=notification.created_at,
        )


class NotificationListResponse(CamelModel):
    """Response DTO for notification list."""

    items: List[NotificationResponse]
    unread_count: int


class MarkReadResponse(CamelModel):
    """Response DTO for mark as read operations."""

    success: bool
