"""Repository for registered projects."""

from datetime import datetime
from typing import List, Optional

from pymongo.database import Database

from secureflow.entities.project import Project, ScanFrequency
from secureflow.utils.datetime import utc_now

from .base import BaseRepository


class ProjectRepository(BaseRepository[Project]):
    """Repository for Project entities."""

    def __init__(self, db: Database):
        super().__init__(db, "projects", Project)
        self.collection.create_index("external_id", unique=True)

    def find_by_external_id(self, external_id: str) -> Optional[Project]:
        return self.find_one({"external_id": str(external_id)})

    def list_by_frequency(self, frequency: ScanFrequency) -> List[Project]:
        return self.find_many({"scan_frequency": ScanFrequency(frequency).value})

    def touch_last_scan(
        self, external_id: str, scanned_at: Optional[datetime] = None
    ) -> None:
        now = utc_now()
        self.collection.update_one(
            {"external_id": str(external_id)},
            {"$set": {"last_scan_at": scanned_at or now, "updated_at": now}},
        )
