from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseRepository:
    collection_name: str = ""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self.db[self.collection_name]

    @staticmethod
    def _ensure_object_id(value: Any) -> ObjectId:
        if isinstance(value, ObjectId):
            return value
        return ObjectId(str(value))

    @staticmethod
    def is_valid_id(value: Any) -> bool:
        try:
            BaseRepository._ensure_object_id(value)
        except (InvalidId, TypeError):
            return False
        return True

    async def find_many(
        self,
        query: Dict[str, Any] | None = None,
        *,
        sort: Optional[Sequence[tuple[str, int]]] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
        projection: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self.collection.find(query or {}, projection)
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return [doc async for doc in cursor]

    async def count_many(self, query: Dict[str, Any] | None = None) -> int:
        return await self.collection.count_documents(query or {})

    async def find_one(
        self, query: Dict[str, Any], projection: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one(query, projection)

    async def find_by_id(
        self, value: Any, projection: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        if not self.is_valid_id(value):
            return None
        return await self.find_one({"_id": self._ensure_object_id(value)}, projection)

    async def insert_one(self, doc: Dict[str, Any], *, with_timestamps: bool = True) -> ObjectId:
        # Never persist a null _id; MongoDB will auto-generate one
        if doc.get("_id", "__absent__") is None:
            doc = {k: v for k, v in doc.items() if k != "_id"}

        if with_timestamps:
            now = utcnow()
            if doc.get("created_at") is None:
                doc["created_at"] = now
            if doc.get("updated_at") is None:
                doc["updated_at"] = now
        result = await self.collection.insert_one(doc)
        return result.inserted_id

    async def update_one(
        self,
        filter_query: Dict[str, Any],
        update: Dict[str, Any],
        *,
        touch_updated_at: bool = True,
        array_filters: Optional[List[Dict[str, Any]]] = None,
    ) -> int:
        if touch_updated_at:
            update = {**update}
            set_part = update.get("$set", {})
            set_part = {**set_part, "updated_at": utcnow()}
            update["$set"] = set_part
        result = await self.collection.update_one(filter_query, update, array_filters=array_filters)
        return result.modified_count

    async def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [doc async for doc in self.collection.aggregate(pipeline)]
