import json

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from core.get_current_user import get_current_user_ws
from core.get_db import get_session_factory

from .chat_socket_service import ChatSocketService
from .connection_manager import Connection, registry

router = APIRouter(tags=["Chat Realtime"])


@router.websocket("/v1/ws/chat")
async def chat_endpoint(
    websocket: WebSocket,
    session_factory=Depends(get_session_factory),
):
    async with session_factory() as db:
        current_user = await get_current_user_ws(websocket, db)
    if current_user is None:
        return

    await websocket.accept()
    connection = Connection(websocket, current_user.id)
    chat_service = ChatSocketService(
        current_user, connection, registry, session_factory=session_factory
    )

    await chat_service.on_connect()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                envelope = json.loads(raw)
            except ValueError:
                await chat_service.error("Malformed event")
                continue
            await chat_service.on_message(envelope)
    except WebSocketDisconnect:
        pass
    finally:
        await chat_service.on_disconnect()
