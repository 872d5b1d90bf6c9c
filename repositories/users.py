from __future__ import annotations

import re
from typing import Any, Dict, Iterable, Optional

from bson import ObjectId

from models.user import User, UserRole
from .base import BaseRepository


class UserRepository(BaseRepository):
    collection_name = "users"

    async def get(self, user_id: Any) -> Optional[User]:
        return User.from_mongo(await self.find_by_id(user_id))

    async def get_by_email(self, email: str) -> Optional[User]:
        # Case-insensitive exact match on email to avoid login failures due to casing
        email_ci = {"$regex": f"^{re.escape(str(email))}$", "$options": "i"}
        return User.from_mongo(await self.find_one({"email": email_ci}))

    async def get_bookable_doctor(self, doctor_id: Any) -> Optional[User]:
        if not self.is_valid_id(doctor_id):
            return None
        doc = await self.find_one(
            {
                "_id": self._ensure_object_id(doctor_id),
                "role": UserRole.doctor.value,
                "is_verified": True,
                "is_active": True,
            }
        )
        return User.from_mongo(doc)

    async def get_many(self, user_ids: Iterable[ObjectId]) -> Dict[str, User]:
        ids = list({self._ensure_object_id(u) for u in user_ids})
        if not ids:
            return {}
        docs = await self.find_many({"_id": {"$in": ids}})
        return {str(d["_id"]): User.from_mongo(d) for d in docs}

    async def set_doctor_rating(self, doctor_id: ObjectId, rating: float, total_reviews: int) -> None:
        await self.update_one(
            {"_id": doctor_id},
            {"$set": {"doctor_info.rating": rating, "doctor_info.total_reviews": total_reviews}},
        )

    async def create(self, user: User) -> User:
        doc = user.to_mongo()
        inserted_id = await self.insert_one(doc)
        return User.from_mongo({**doc, "_id": inserted_id})
