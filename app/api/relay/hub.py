"""WebSocket connection hub delivering relay messages per connection."""

import asyncio
from typing import Any

import orjson
from fastapi import WebSocket
from loguru import logger
from starlette.websockets import WebSocketDisconnect, WebSocketState


class ConnectionHub:
    """Connection id -> WebSocket map; implements RelayNotifier.

    Sends to one socket are serialized so frames from concurrent handlers and
    feed callbacks never interleave.
    """

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}
        self._send_locks: dict[str, asyncio.Lock] = {}

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        self._sockets[connection_id] = websocket
        self._send_locks[connection_id] = asyncio.Lock()

    def unregister(self, connection_id: str) -> None:
        self._sockets.pop(connection_id, None)
        self._send_locks.pop(connection_id, None)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._sockets

    def __len__(self) -> int:
        return len(self._sockets)

    async def emit(self, connection_id: str, event: str, data: Any) -> None:
        websocket = self._sockets.get(connection_id)
        lock = self._send_locks.get(connection_id)
        if websocket is None or lock is None:
            logger.debug("Dropping {} for gone connection {}", event, connection_id)
            return

        frame = orjson.dumps({"event": event, "data": data}).decode()
        try:
            async with lock:
                if websocket.application_state != WebSocketState.CONNECTED:
                    return
                await websocket.send_text(frame)
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.info("Send of {} to {} failed: {}", event, connection_id, exc)
