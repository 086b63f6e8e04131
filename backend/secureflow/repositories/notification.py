"""Repository for in-app notifications."""

from typing import List, Optional

from pymongo import DESCENDING
from pymongo.database import Database

from secureflow.entities.notification import Notification
from secureflow.utils.datetime import utc_now

from .base import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification entities."""

    def __init__(self, db: Database):
        super().__init__(db, "notifications", Notification)
        self.collection.create_index(
            [("user_id", 1), ("created_at", DESCENDING)], background=True
        )

    def list_for_user(
        self, user_id: str, unread_only: bool = False, limit: int = 50
    ) -> List[Notification]:
        query = {"user_id": user_id}
        if unread_only:
            query["is_read"] = False
        return self.find_many(query, sort=[("created_at", DESCENDING)], limit=limit)

    def count_unread(self, user_id: str) -> int:
        return self.collection.count_documents({"user_id": user_id, "is_read": False})

    def mark_as_read(self, notification_id: str, user_id: str) -> Optional[Notification]:
        """Mark one of the user's notifications as read. None if it is not theirs."""
        oid = self._to_object_id(notification_id)
        if oid is None:
            return None
        result = self.collection.update_one(
            {"_id": oid, "user_id": user_id},
            {"$set": {"is_read": True, "updated_at": utc_now()}},
        )
        if result.matched_count == 0:
            return None
        return self.find_by_id(oid)
