# backend/switchboard/api/websockets.py
from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketDisconnect
from typing import Optional
import json
import logging

from switchboard.auth.auth import AuthService
from switchboard.core import events
from switchboard.core.exceptions import Unauthorized
from switchboard.db.database import get_db_context
from switchboard.models.models import User
from switchboard.security.audit_logger import audit_logger

logger = logging.getLogger(__name__)
router = APIRouter()


def _client_ip(websocket: WebSocket) -> str:
    forwarded_for = websocket.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    return websocket.client.host if websocket.client else "unknown"


async def authenticate_realtime_token(token: Optional[str]) -> Optional[User]:
    """Validate a bearer token sent over the realtime channel. None when invalid."""
    if not token or not isinstance(token, str):
        return None

    async with get_db_context() as db:
        try:
            return await AuthService.validate(db, token)
        except Unauthorized:
            return None


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket):
    """
    Realtime presence channel.

    The connection is accepted unauthenticated and only joins the hub after
    an ``{"type": "auth", "token": ...}`` frame validates. A failed attempt
    answers ``auth_error`` and leaves the socket open for another try.
    """
    hub = websocket.app.state.presence_hub
    client_ip = _client_ip(websocket)
    await websocket.accept()

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring malformed realtime frame from {client_ip}")
                continue
            if not isinstance(message, dict):
                continue

            message_type = message.get("type")

            if message_type == "auth":
                user = await authenticate_realtime_token(message.get("token"))
                if user is None:
                    # A failed retry drops any earlier registration of this socket
                    await hub.unregister(websocket)
                    audit_logger.log_websocket_auth_failure(ip_address=client_ip, reason="invalid_token")
                    await websocket.send_json(events.auth_error_event("Invalid or expired token"))
                    continue

                await hub.register(websocket, user.id, user.role)
                await websocket.send_json(events.auth_success_event(user))
                logger.info(f"Realtime authentication successful for user {user.id} from {client_ip}")
                continue

            if not await hub.is_registered(websocket):
                # Unauthenticated connections are inert
                continue

            if message_type == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        logger.info(f"Realtime client {client_ip} disconnected")
    except Exception as e:
        logger.error(f"Realtime connection error from {client_ip}: {e}")
    finally:
        await hub.unregister(websocket)
