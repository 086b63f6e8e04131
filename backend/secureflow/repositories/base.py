"""Generic repository over a single MongoDB collection."""

from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from bson import ObjectId
from pymongo.collection import Collection
from pymongo.database import Database

from secureflow.entities.base import BaseEntity

T = TypeVar("T", bound=BaseEntity)


class BaseRepository(Generic[T]):
    """Typed CRUD helpers shared by all repositories."""

    def __init__(self, db: Database, collection_name: str, model_class: Type[T]):
        self.db = db
        self.collection: Collection = db[collection_name]
        self.model_class = model_class

    @staticmethod
    def _to_object_id(value: str | ObjectId | None) -> Optional[ObjectId]:
        if value is None or isinstance(value, ObjectId):
            return value
        if ObjectId.is_valid(value):
            return ObjectId(value)
        return None

    def _to_model(self, doc: Optional[Dict[str, Any]]) -> Optional[T]:
        if doc is None:
            return None
        return self.model_class.model_validate(doc)

    def find_by_id(self, entity_id: str | ObjectId) -> Optional[T]:
        oid = self._to_object_id(entity_id)
        if oid is None:
            return None
        return self._to_model(self.collection.find_one({"_id": oid}))

    def find_one(self, query: Dict[str, Any]) -> Optional[T]:
        return self._to_model(self.collection.find_one(query))

    def find_many(
        self,
        query: Dict[str, Any],
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[T]:
        cursor = self.collection.find(query)
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return [self.model_class.model_validate(doc) for doc in cursor]

    def paginate(
        self,
        query: Dict[str, Any],
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> Tuple[List[T], int]:
        total = self.collection.count_documents(query)
        return self.find_many(query, sort=sort, skip=skip, limit=limit), total

    def insert_one(self, entity: T) -> T:
        result = self.collection.insert_one(entity.to_mongo())
        entity.id = result.inserted_id
        return entity

    def update_one(self, entity_id: str | ObjectId, updates: Dict[str, Any]) -> Optional[T]:
        oid = self._to_object_id(entity_id)
        if oid is None:
            return None
        self.collection.update_one({"_id": oid}, {"$set": updates})
        return self.find_by_id(oid)
