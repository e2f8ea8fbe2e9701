"""Room membership state machine and event relay.

A connection moves ``DISCONNECTED -> UNJOINED -> JOINED -> DISCONNECTED``. All
transitions are plain synchronous calls made from the single event loop, so
the registry, tracker and rooms are never mutated concurrently. Outbound
events are handed to the transport, which only enqueues them.
"""
from enum import Enum
from typing import Any, Iterable, Optional, Protocol, Set

from pydantic import ValidationError

from backend import ConnectionTracker, Room, RoomRegistry
from errors import RelayError
from logging_config import get_logger
from schemas.events import (
    ErrorEvent,
    FileMessage,
    FileSharedEvent,
    JoinedPayload,
    JoinedSuccessfullyEvent,
    JoinRoomEvent,
    NewMessageEvent,
    OutgoingEvent,
    Presence,
    PreviousMessagesEvent,
    SendMessageEvent,
    StopTypingEvent,
    TextMessage,
    TypingEvent,
    UserJoinedEvent,
    UserLeftEvent,
    UserStopTypingEvent,
    UserTypingEvent,
    incoming_event_adapter,
)

logger = get_logger(__name__)

JOINED_NOTICE = "Someone joined the chat"
LEFT_NOTICE = "Someone left the chat"
ANONYMOUS_SENDER = "anonymous"


class Transport(Protocol):
    def send(self, connection_id: str, event: OutgoingEvent, droppable: bool = False) -> bool:
        ...

    def broadcast(
        self,
        connection_ids: Iterable[str],
        event: OutgoingEvent,
        exclude: Iterable[str] = (),
        droppable: bool = False,
    ) -> int:
        ...


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    UNJOINED = "unjoined"
    JOINED = "joined"


class RelayEngine:
    def __init__(
        self,
        registry: RoomRegistry,
        tracker: ConnectionTracker,
        transport: Transport,
        record_file_shares: bool = False,
    ):
        self.registry = registry
        self.tracker = tracker
        self.transport = transport
        self.record_file_shares = record_file_shares
        self._connections: Set[str] = set()

    def state(self, connection_id: str) -> ConnectionState:
        if connection_id not in self._connections:
            return ConnectionState.DISCONNECTED
        if connection_id in self.tracker:
            return ConnectionState.JOINED
        return ConnectionState.UNJOINED

    def connect(self, connection_id: str) -> None:
        self._connections.add(connection_id)
        logger.info(f"Connection {connection_id} opened")

    def handle(self, connection_id: str, frame: Any) -> None:
        """Parse one inbound frame and run the matching transition.

        Frames that do not parse into a known event are dropped silently.
        """
        try:
            event = incoming_event_adapter.validate_python(frame)
        except ValidationError as e:
            logger.debug(f"Dropping malformed frame from {connection_id}: {e.error_count()} error(s)")
            return

        if isinstance(event, JoinRoomEvent):
            self.join(connection_id, event.data)
        elif isinstance(event, SendMessageEvent):
            self.send_message(connection_id, event.data.message)
        elif isinstance(event, TypingEvent):
            self.typing(connection_id, True)
        elif isinstance(event, StopTypingEvent):
            self.typing(connection_id, False)

    def join(self, connection_id: str, room_id: str) -> Optional[Room]:
        state = self.state(connection_id)
        if state is ConnectionState.DISCONNECTED:
            logger.debug(f"Ignoring join from closed connection {connection_id}")
            return None
        if state is ConnectionState.JOINED:
            # Re-join is a no-op; a connection leaves a room only by disconnecting.
            logger.debug(f"Ignoring join to {room_id} from {connection_id}, already in {self.tracker.lookup(connection_id)}")
            return None

        try:
            room = self.registry.require(room_id)
            user_count = room.add_member(connection_id)
        except RelayError as e:
            logger.info(f"Join rejected for {connection_id}: {e}")
            self.transport.send(connection_id, ErrorEvent(data=e.reason))
            return None

        self.tracker.bind(connection_id, room.id)
        self.transport.send(connection_id, PreviousMessagesEvent(data=list(room.history)))
        self.transport.broadcast(
            room.others(connection_id),
            UserJoinedEvent(data=Presence(message=JOINED_NOTICE, userCount=user_count)),
        )
        self.transport.send(
            connection_id,
            JoinedSuccessfullyEvent(data=JoinedPayload(roomId=room.id, userCount=user_count)),
        )
        logger.info(f"Connection {connection_id} joined room {room.id} ({user_count}/{room.capacity})")
        return room

    def send_message(self, connection_id: str, text: str) -> Optional[TextMessage]:
        room = self._current_room(connection_id)
        if room is None:
            logger.debug(f"Dropping message from {connection_id}: not in a room")
            return None

        record = TextMessage(message=text, timestamp=room.next_timestamp(), sender=connection_id)
        room.append(record)
        self.transport.broadcast(room.members, NewMessageEvent(data=record))
        logger.debug(f"Message #{len(room.history)} from {connection_id} relayed in room {room.id}")
        return record

    def share_file(
        self,
        room_id: str,
        file_name: str,
        file_size: int,
        download_url: str,
        sender: str = ANONYMOUS_SENDER,
    ) -> Optional[FileMessage]:
        """Broadcast a completed upload. Returns None if the room is gone."""
        room = self.registry.get(room_id)
        if room is None:
            logger.info(f"File share for {room_id} dropped: room no longer exists")
            return None

        record = FileMessage(
            fileName=file_name,
            fileSize=file_size,
            downloadUrl=download_url,
            timestamp=room.next_timestamp(),
            sender=sender,
        )
        if self.record_file_shares:
            room.append(record)
        self.transport.broadcast(room.members, FileSharedEvent(data=record))
        logger.info(f"File {download_url} ({file_size} bytes) shared in room {room_id}")
        return record

    def typing(self, connection_id: str, active: bool) -> None:
        room = self._current_room(connection_id)
        if room is None:
            return
        event = UserTypingEvent() if active else UserStopTypingEvent()
        self.transport.broadcast(room.members, event, exclude=[connection_id], droppable=True)

    def disconnect(self, connection_id: str) -> None:
        """Tear down a connection. Safe to call for connections that never joined."""
        self._connections.discard(connection_id)
        room_id = self.tracker.unbind(connection_id)
        logger.info(f"Connection {connection_id} closed")
        if room_id is None:
            return

        room = self.registry.get(room_id)
        if room is None:
            return
        room.remove_member(connection_id)
        self.transport.broadcast(
            room.members,
            UserLeftEvent(data=Presence(message=LEFT_NOTICE, userCount=room.user_count)),
        )
        logger.info(f"Connection {connection_id} left room {room_id} ({room.user_count} remaining)")
        if room.is_empty:
            self.registry.delete(room_id)

    def _current_room(self, connection_id: str) -> Optional[Room]:
        room_id = self.tracker.lookup(connection_id)
        if room_id is None:
            return None
        return self.registry.get(room_id)
