"""
MongoDB connection helpers.

The client is owned by whoever runs the process: the FastAPI lifespan opens
one ``MongoResource`` at startup and the Celery worker opens one per worker
process. Components receive the resulting ``Database`` by reference.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request
from pymongo import MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)


class MongoResource:
    """Lifetime-scoped MongoDB handle: opened once, shared, closed once."""

    def __init__(
        self,
        uri: Optional[str] = None,
        db_name: Optional[str] = None,
        client: Optional[MongoClient] = None,
    ):
        # Import settings lazily to ensure env vars are loaded
        from secureflow.config import settings

        self.uri = uri or settings.MONGODB_URI
        self.db_name = db_name or settings.MONGODB_DB_NAME
        self._client = client
        self._owns_client = client is None
        self._database: Database | None = None

    def open(self) -> Database:
        if self._database is not None:
            return self._database

        if self._client is None:
            from secureflow.config import settings

            logger.info("Connecting to MongoDB database %s", self.db_name)
            self._client = MongoClient(
                self.uri,
                serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
            )
        self._database = self._client[self.db_name]
        return self._database

    @property
    def database(self) -> Database:
        if self._database is None:
            raise RuntimeError("MongoResource used before open()")
        return self._database

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None
            logger.info("MongoDB connection closed")
        self._database = None


def get_db(request: Request) -> Database:
    """FastAPI dependency returning the application's database handle."""
    return request.app.state.mongo.database
