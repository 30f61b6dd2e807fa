"""WebSocket endpoint for the message relay.

Frames are JSON objects ``{"event": ..., "data": ...}``.

Inbound: authenticate, join-consultation, leave-consultation, send-message,
mark-read. Outbound: authenticated, joined, left, new-message, error.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as FrameValidationError

from jadwa.errors import JadwaError, ValidationError
from jadwa.relay.connection import Connection, WebSocketConnection
from jadwa.relay.frames import (
    AuthenticateFrame,
    JoinFrame,
    LeaveFrame,
    MarkReadFrame,
    SendMessageFrame,
    parse_frame,
)
from jadwa.relay.service import MessageRelay

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["relay"])


async def handle_frame(relay: MessageRelay, connection: Connection, raw: str) -> None:
    """Apply one inbound frame; engine errors go back to this connection as ``error`` events."""
    try:
        frame = parse_frame(raw)
    except FrameValidationError as exc:
        error = ValidationError(
            "Malformed frame",
            details={"errors": [err["msg"] for err in exc.errors()]},
        )
        await connection.send("error", error.to_dict())
        return

    try:
        if isinstance(frame, AuthenticateFrame):
            identity = await relay.authenticate(connection, frame.data.token)
            await connection.send(
                "authenticated",
                {"user_id": str(identity.user_id), "role": identity.role.value},
            )
        elif isinstance(frame, JoinFrame):
            await relay.subscribe(connection, frame.data.consultation_id)
            await connection.send("joined", {"consultation_id": str(frame.data.consultation_id)})
        elif isinstance(frame, LeaveFrame):
            await relay.unsubscribe(connection, frame.data.consultation_id)
            await connection.send("left", {"consultation_id": str(frame.data.consultation_id)})
        elif isinstance(frame, SendMessageFrame):
            await relay.send_message(
                connection,
                frame.data.consultation_id,
                frame.data.message,
                file_url=frame.data.file_url,
                file_name=frame.data.file_name,
            )
        elif isinstance(frame, MarkReadFrame):
            await relay.mark_read(frame.data.message_id, connection.identity)
    except JadwaError as err:
        logger.info(
            "relay_frame_rejected",
            connection_id=connection.connection_id,
            frame=frame.event,
            kind=err.kind,
        )
        await connection.send("error", err.to_dict())


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket):
    relay: MessageRelay = websocket.app.state.services.relay
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    logger.info("relay_connected", connection_id=connection.connection_id)

    try:
        while True:
            raw = await websocket.receive_text()
            await handle_frame(relay, connection, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await relay.disconnect(connection)
