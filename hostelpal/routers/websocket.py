"""
WebSocket router for live ticket updates.

Provides a WebSocket endpoint that:
1. Authenticates users via the bearer token in ``?token=``
2. Keeps one live connection per user (a reconnect replaces the old one)
3. Relays client ``ticket_update`` / ``notification`` frames
"""

import json
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from hostelpal.core.deps import authenticate_token, get_db
from hostelpal.core.websocket import manager
from hostelpal.db.enums import ROLES_CAN_TRIAGE
from hostelpal.services.ticket_events import TRIAGE_ROLES

router = APIRouter(tags=["WebSocket"])
logger = logging.getLogger(__name__)

AUTH_FAILED_CLOSE_CODE = 4001


@router.websocket("/ws")
async def websocket_updates(
    websocket: WebSocket,
    token: str | None = Query(None),
    db: Session = Depends(get_db),
):
    """
    Once connected, the server pushes:
    - new tickets to staff/admin (type: 'new_ticket')
    - ticket changes (type: 'ticket_update')
    - persisted notifications (type: 'notification')
    """
    await websocket.accept()

    user = None
    if token:
        try:
            user = authenticate_token(db, token)
        except HTTPException:
            user = None
    if user is None:
        db.close()
        await websocket.send_json({"type": "error", "message": "Authentication failed"})
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE)
        return

    user_id = str(user.id)
    role = user.role
    db.close()

    connection_id = uuid.uuid4().hex
    await manager.register(connection_id, user_id, websocket, role)
    await websocket.send_json({"type": "connection", "status": "success"})

    try:
        while True:
            data = await websocket.receive_text()

            # Handle ping
            if data == "ping":
                await websocket.send_text("pong")
                continue

            await _relay(websocket, user_id, role, data)
    except WebSocketDisconnect:
        pass
    finally:
        await manager.unregister(connection_id)


async def _relay(websocket: WebSocket, user_id: str, role: str, data: str) -> None:
    try:
        frame = json.loads(data)
    except ValueError:
        frame = None
    if not isinstance(frame, dict):
        await websocket.send_json({"type": "error", "message": "Invalid message"})
        return

    frame_type = frame.get("type")
    if frame_type == "ticket_update":
        await manager.broadcast_to_role(
            TRIAGE_ROLES,
            {"type": "ticket_update", "ticket": frame.get("ticket"), "from": user_id},
        )
    elif frame_type == "notification":
        # Only staff/admin may address other users directly
        if role not in {r.value for r in ROLES_CAN_TRIAGE}:
            await websocket.send_json({"type": "error", "message": "Access denied"})
            return
        target = frame.get("userId") or frame.get("user_id")
        if target:
            await manager.send_to_user(
                str(target),
                {
                    "type": "notification",
                    "notification": frame.get("notification"),
                    "from": user_id,
                },
            )
    else:
        logger.debug("Ignoring websocket frame of type %r", frame_type)
