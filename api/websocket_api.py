import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core.connection_manager import manager
from core.depends import AsyncDBSession
from core.identity import identity
from services.access_guard import AccessGuard, GuardState

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, session: AsyncDBSession, token: Optional[str] = None):
    """Live poll events. With ``?token=`` the socket is closed with a redirect once that session ends."""
    await manager.connect(websocket)

    guard = None
    expiry = None
    if token:
        guard = AccessGuard()
        user = await identity.get_current_user(session, token)
        if guard.resolve(user) is GuardState.UNAUTHENTICATED:
            await manager.redirect(websocket, guard.redirect_to)
            return
        # Later sign-out or expiry arrives from a publisher that cannot await
        guard.on_redirect = lambda location: manager.schedule_redirect(websocket, location)
        guard.watch(identity, identity.token_id(token))
        expiry = asyncio.get_running_loop().create_task(identity.expire_when_due(token))

    try:
        await websocket.send_json({"type": "connected", "data": {"authenticated": bool(guard and guard.is_authenticated)}})

        while True:
            data = await websocket.receive_text()
            logger.debug(f"Received WebSocket message: {data}")
            await websocket.send_json({"type": "pong", "data": data})

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        if expiry is not None:
            expiry.cancel()
        if guard is not None:
            guard.release()
        manager.disconnect(websocket)
