"""
Event emission towards a connected client.

Emitting never blocks the producer and never raises: frames are queued and a
single pump task writes them to the socket in order. Once the session is
closed, further events are dropped.
"""

import asyncio
from typing import Any, Protocol

from fastapi import WebSocket
from pydantic import BaseModel

from bulkdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EventEmitter(Protocol):
    """Anything jobs and verification tasks can report progress to."""

    def emit(self, event: str, data: Any) -> None: ...


def serialize_payload(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    return data


class WebSocketEmitter:
    """Per-connection emitter backed by an unbounded asyncio queue."""

    def __init__(self, websocket: WebSocket, session_id: str):
        self._websocket = websocket
        self.session_id = session_id
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.closed = False
        self.dropped = 0

    def emit(self, event: str, data: Any) -> None:
        if self.closed:
            self.dropped += 1
            logger.debug("Event dropped after close", session_id=self.session_id, socket_event=event)
            return
        self._queue.put_nowait({"event": event, "data": serialize_payload(data)})

    async def pump(self) -> None:
        """Write queued frames to the socket until closed or the socket fails."""
        while True:
            frame = await self._queue.get()
            try:
                await self._websocket.send_json(frame)
            except Exception as e:
                logger.warning(
                    "Failed to deliver event",
                    session_id=self.session_id,
                    socket_event=frame["event"],
                    error=str(e),
                )
                self.close()
                return

    def close(self) -> None:
        self.closed = True
