from typing import Iterable, List
from uuid import UUID

from sqlalchemy import select

from models.models import User


class UserRepo:
    def __init__(self, db):
        self.db = db

    async def get_by_id(self, user_id: UUID) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_many(self, user_ids: Iterable[UUID]) -> List[User]:
        ids = list(set(user_ids))
        if not ids:
            return []
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return list(result.scalars().all())
