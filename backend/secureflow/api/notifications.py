"""Notification API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database

from secureflow.database.mongo import get_db
from secureflow.dtos.notification import (
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
)
from secureflow.middleware.auth import get_current_user
from secureflow.repositories.notification import NotificationRepository

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    db: Database = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """List notifications for the current user."""
    repo = NotificationRepository(db)
    user_id = current_user["_id"]
    items = repo.list_for_user(user_id, unread_only=unread_only, limit=limit)
    return NotificationListResponse(
        items=[NotificationResponse.from_entity(n) for n in items],
        unread_count=repo.count_unread(user_id),
    )


@router.put("/{notification_id}/read", response_model=MarkReadResponse)
def mark_as_read(
    notification_id: str,
    db: Database = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """Mark a single notification as read."""
    repo = NotificationRepository(db)
    if repo.mark_as_read(notification_id, current_user["_id"]) is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return MarkReadResponse(success=True)
