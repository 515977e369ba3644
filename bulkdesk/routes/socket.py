"""
WebSocket route for the dashboard.
One connection is one session: jobs started on it are owned by it and are
torn down when it disconnects.
"""

import asyncio
import json
import uuid

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from bulkdesk.dependencies import ServiceContainer, get_container
from bulkdesk.events.emitter import WebSocketEmitter
from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.services.session_service import DeskSession

logger = get_logger(__name__)

router = APIRouter(tags=["socket"])


@router.websocket("/ws")
async def desk_socket(websocket: WebSocket, services: ServiceContainer = Depends(get_container)):
    """Receive command frames and stream job events back until the client leaves."""
    await websocket.accept()

    session_id = uuid.uuid4().hex
    emitter = WebSocketEmitter(websocket, session_id)
    session = DeskSession(session_id, emitter, services)
    pump_task = asyncio.create_task(emitter.pump())

    logger.info("Session connected", session_id=session_id)

    try:
        while True:
            text = await websocket.receive_text()
            try:
                frame = json.loads(text)
            except ValueError:
                frame = None
            session.handle_frame(frame)
    except WebSocketDisconnect as e:
        logger.info("Client disconnected", session_id=session_id, code=e.code)
    finally:
        session.disconnect()
        pump_task.cancel()
