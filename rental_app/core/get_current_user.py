import logging

from fastapi import Depends, Request, WebSocket
from sqlalchemy.ext.asyncio import AsyncSession

from models.models import User
from repos.user_repo import UserRepo

from .exceptions import UnauthorizedError
from .get_db import get_db_async
from .security import decode_access_token, extract_bearer

logger = logging.getLogger(__name__)

WS_UNAUTHORIZED = 4401


async def _load_user(db: AsyncSession, token: str | None) -> User:
    if not token:
        raise UnauthorizedError("Not authenticated")

    user_id = decode_access_token(token)
    user = await UserRepo(db).get_by_id(user_id)
    if not user or not user.is_active:
        raise UnauthorizedError("User not found")
    return user


async def get_current_user(
    request: Request, db: AsyncSession = Depends(get_db_async)
) -> User:
    token = extract_bearer(request.headers.get("Authorization"))
    return await _load_user(db, token or request.cookies.get("access_token"))


async def get_current_user_ws(websocket: WebSocket, db: AsyncSession) -> User | None:
    """Authenticate a socket handshake; closes it and returns None on failure."""
    token = extract_bearer(websocket.headers.get("authorization"))
    token = token or websocket.query_params.get("token")

    try:
        return await _load_user(db, token)
    except UnauthorizedError as e:
        logger.info(f"Rejected chat socket: {e.message}")
        await websocket.close(code=WS_UNAUTHORIZED, reason=e.message)
        return None
