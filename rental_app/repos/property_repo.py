from uuid import UUID

from sqlalchemy import select

from models.models import Property


class PropertyRepo:
    def __init__(self, db):
        self.db = db

    async def get_by_id(self, property_id: UUID) -> Property | None:
        result = await self.db.execute(
            select(Property).where(Property.id == property_id)
        )
        return result.scalar_one_or_none()

    async def lock_for_update(self, property_id: UUID) -> Property | None:
        # Row lock on databases that support it; SQLite ignores FOR UPDATE.
        result = await self.db.execute(
            select(Property).where(Property.id == property_id).with_for_update()
        )
        return result.scalar_one_or_none()
