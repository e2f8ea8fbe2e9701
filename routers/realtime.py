import asyncio
import json
import uuid

from fastapi import APIRouter, WebSocket

from logging_config import get_logger

logger = get_logger(__name__)

realtime_router = APIRouter(tags=["realtime"])


@realtime_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """One chat connection. Frames are JSON objects ``{"event": ..., "data": ...}``."""
    relay = websocket.app.state.relay
    transport = websocket.app.state.transport

    await websocket.accept()
    connection_id = uuid.uuid4().hex
    transport.register(connection_id)
    relay.connect(connection_id)
    writer = asyncio.create_task(transport.pump(connection_id, websocket))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                break
            data = message.get("text")
            if data is None:
                logger.debug(f"Dropping binary frame from connection {connection_id}")
                continue
            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                logger.debug(f"Dropping non-JSON frame from connection {connection_id}")
                continue
            relay.handle(connection_id, frame)
    except Exception as e:
        logger.error(f"Error receiving from connection {connection_id}: {e}", exc_info=True)
    finally:
        relay.disconnect(connection_id)
        transport.unregister(connection_id)
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass
