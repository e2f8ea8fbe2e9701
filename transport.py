import asyncio
import json
from typing import Dict, Iterable

from fastapi import WebSocket

from constants import OUTBOX_MAX_FRAMES, SLOW_CONSUMER_CLOSE_CODE
from logging_config import get_logger
from schemas.events import OutgoingEvent

logger = get_logger(__name__)


class WebSocketTransport:
    """Per-connection outbound queues in front of live WebSockets.

    ``send`` and ``broadcast`` only enqueue, so the relay never awaits while it
    mutates room state. A writer task per connection (``pump``) drains its queue
    in FIFO order, which keeps every recipient's view in relay order. A connection
    whose queue fills up is evicted and its socket closed.
    """

    def __init__(self, max_pending: int = OUTBOX_MAX_FRAMES):
        self._outboxes: Dict[str, asyncio.Queue] = {}
        self._max_pending = max_pending

    def register(self, connection_id: str) -> None:
        self._outboxes[connection_id] = asyncio.Queue(maxsize=self._max_pending)
        logger.debug(f"Registered outbox for connection {connection_id} ({len(self._outboxes)} live)")

    def unregister(self, connection_id: str) -> None:
        if self._outboxes.pop(connection_id, None) is not None:
            logger.debug(f"Removed outbox for connection {connection_id} ({len(self._outboxes)} live)")

    def send(self, connection_id: str, event: OutgoingEvent, droppable: bool = False) -> bool:
        return self._enqueue(connection_id, event.model_dump(mode="json"), droppable)

    def broadcast(
        self,
        connection_ids: Iterable[str],
        event: OutgoingEvent,
        exclude: Iterable[str] = (),
        droppable: bool = False,
    ) -> int:
        excluded = set(exclude)
        frame = event.model_dump(mode="json")
        delivered = 0
        for connection_id in connection_ids:
            if connection_id in excluded:
                continue
            if self._enqueue(connection_id, frame, droppable):
                delivered += 1
        return delivered

    def _enqueue(self, connection_id: str, frame: dict, droppable: bool) -> bool:
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            logger.debug(f"Dropping {frame['event']} for unknown connection {connection_id}")
            return False
        if droppable and not outbox.empty():
            logger.debug(f"Dropping {frame['event']} for busy connection {connection_id}")
            return False
        try:
            outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(f"Outbox for connection {connection_id} is full, evicting slow reader")
            self._evict(connection_id, outbox)
            return False
        return True

    def _evict(self, connection_id: str, outbox: asyncio.Queue) -> None:
        # Pending frames are discarded; the writer closes the socket on the None marker.
        self._outboxes.pop(connection_id, None)
        while not outbox.empty():
            outbox.get_nowait()
        outbox.put_nowait(None)

    async def pump(self, connection_id: str, websocket: WebSocket) -> None:
        """Write queued frames to the socket until cancelled or the send fails."""
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            return
        while True:
            frame = await outbox.get()
            if frame is None:
                try:
                    await websocket.close(code=SLOW_CONSUMER_CLOSE_CODE)
                except Exception as e:
                    logger.debug(f"Error closing slow connection {connection_id}: {e}")
                break
            try:
                await websocket.send_text(json.dumps(frame))
            except Exception as e:
                logger.warning(f"Error sending {frame['event']} to connection {connection_id}: {e}")
                break

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._outboxes

    def __len__(self) -> int:
        return len(self._outboxes)
