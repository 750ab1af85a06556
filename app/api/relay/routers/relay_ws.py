import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from loguru import logger
from pydantic import ValidationError

from app.api.relay.hub import ConnectionHub
from app.api.relay.schemas import InboundMessage
from app.domain.relay.relay_controller import RelayController
from app.domain.relay.relay_domain import build_relay_controller
from app.domain.relay.relay_messages import ADMIN_LOGIN, ADMIN_TOGGLE_BLOCK, START_MONITORING
from app.domain.utils.idgen import new_connection_id

router = APIRouter(prefix="/relay")

# Singleton instances
_connection_hub = ConnectionHub()
_relay_controller = build_relay_controller(_connection_hub)


def get_connection_hub() -> ConnectionHub:
    """Get the singleton ConnectionHub instance."""
    return _connection_hub


def get_relay_controller() -> RelayController:
    """Get the singleton RelayController instance."""
    return _relay_controller


def resolve_identity(websocket: WebSocket) -> str:
    """First X-Forwarded-For hop, else the peer address."""
    forwarded = websocket.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return websocket.client.host if websocket.client else "unknown"


async def _guarded(name: str, connection_id: str, handler: Awaitable[Any]) -> None:
    try:
        await handler
    except Exception:
        logger.exception("Handler {} failed for connection {}", name, connection_id)


@router.websocket("/ws")
async def relay_socket(
    websocket: WebSocket,
    controller: RelayController = Depends(get_relay_controller),
    hub: ConnectionHub = Depends(get_connection_hub),
):
    """Bidirectional relay channel for subscribers and administrators."""
    await websocket.accept()

    connection_id = new_connection_id()
    hub.register(connection_id, websocket)
    controller.connect(connection_id, resolve_identity(websocket))

    handlers: dict[str, Callable[[str, Any], Awaitable[Any]]] = {
        START_MONITORING: controller.start_monitoring,
        ADMIN_LOGIN: controller.admin_login,
        ADMIN_TOGGLE_BLOCK: controller.admin_toggle_block,
    }
    # Messages run as tasks so a newer request can supersede a pending one
    pending: set[asyncio.Task] = set()

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000), frame.get("reason"))

            raw = frame.get("text")
            if raw is None:
                logger.warning("Ignoring non-text frame on {}", connection_id)
                continue

            try:
                message = InboundMessage.model_validate_json(raw)
            except ValidationError as exc:
                logger.warning("Malformed frame on {}: {}", connection_id, exc.errors())
                continue

            handler = handlers.get(message.event)
            if handler is None:
                logger.warning("Unknown event {} on {}", message.event, connection_id)
                continue

            task = asyncio.create_task(
                _guarded(message.event, connection_id, handler(connection_id, message.data))
            )
            pending.add(task)
            task.add_done_callback(pending.discard)
    except WebSocketDisconnect as exc:
        logger.info("Connection {} disconnected: code={}", connection_id, exc.code)
    finally:
        hub.unregister(connection_id)
        await controller.disconnect(connection_id)
