from typing import Iterable

from models.enums import UserRole

from .exceptions import ForbiddenError

ANY_ROLE = frozenset(UserRole)
ADMIN_ONLY = frozenset({UserRole.ADMIN})


class CheckRolePermission:
    async def require(self, current_user, allowed: Iterable[UserRole]):
        if current_user is None or current_user.role not in set(allowed):
            raise ForbiddenError("Access Denied")

    async def check_admin(self, current_user):
        await self.require(current_user, ADMIN_ONLY)

    def is_admin(self, current_user) -> bool:
        return current_user is not None and current_user.role == UserRole.ADMIN
