import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from constants import MAX_ROOM_MEMBERS, ROOM_ID_LENGTH
from errors import RoomFull, RoomNotFound
from logging_config import get_logger
from schemas.events import MessageRecord

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Room:
    id: str
    capacity: int = MAX_ROOM_MEMBERS
    created_at: datetime = field(default_factory=utcnow)
    members: List[str] = field(default_factory=list)
    history: List[MessageRecord] = field(default_factory=list)
    last_timestamp: Optional[datetime] = None

    @property
    def user_count(self) -> int:
        return len(self.members)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.capacity

    @property
    def is_empty(self) -> bool:
        return not self.members

    def add_member(self, connection_id: str) -> int:
        """Append a connection to the member list and return the new count."""
        if self.is_full:
            raise RoomFull(self.id)
        self.members.append(connection_id)
        return len(self.members)

    def remove_member(self, connection_id: str) -> bool:
        if connection_id not in self.members:
            return False
        self.members.remove(connection_id)
        return True

    def others(self, connection_id: str) -> List[str]:
        return [member for member in self.members if member != connection_id]

    def next_timestamp(self) -> datetime:
        # History order is acceptance order, so timestamps never go backwards
        # even if the wall clock does.
        now = utcnow()
        if self.last_timestamp is not None and now < self.last_timestamp:
            now = self.last_timestamp
        self.last_timestamp = now
        return now

    def append(self, record: MessageRecord) -> None:
        self.history.append(record)


class RoomRegistry:
    """In-memory table of active rooms keyed by room id."""

    def __init__(self, capacity: int = MAX_ROOM_MEMBERS, id_length: int = ROOM_ID_LENGTH):
        self._rooms: Dict[str, Room] = {}
        self._capacity = capacity
        self._id_length = id_length
        logger.info(f"Initializing RoomRegistry with capacity {capacity}")

    def create_room(self) -> Room:
        room_id = self._generate_room_id()
        room = Room(id=room_id, capacity=self._capacity)
        self._rooms[room_id] = room
        logger.info(f"Room {room_id} created ({len(self._rooms)} active)")
        return room

    def get(self, room_id: str) -> Optional[Room]:
        room = self._rooms.get(room_id)
        if room is None:
            logger.debug(f"Room {room_id} not found")
        return room

    def require(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        return room

    def delete(self, room_id: str) -> None:
        if self._rooms.pop(room_id, None) is not None:
            logger.info(f"Room {room_id} deleted ({len(self._rooms)} active)")

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def _generate_room_id(self) -> str:
        # Short ids from uuid4; retried so an id is never reused while active.
        while True:
            room_id = uuid.uuid4().hex[: self._id_length]
            if room_id not in self._rooms:
                return room_id
            logger.warning(f"Room id collision on {room_id}, regenerating")


class ConnectionTracker:
    """Maps each live connection to the room it currently occupies."""

    def __init__(self):
        self._rooms_by_connection: Dict[str, str] = {}

    def bind(self, connection_id: str, room_id: str) -> None:
        previous = self._rooms_by_connection.get(connection_id)
        if previous is not None and previous != room_id:
            logger.warning(f"Connection {connection_id} rebound from room {previous} to {room_id}")
        self._rooms_by_connection[connection_id] = room_id

    def lookup(self, connection_id: str) -> Optional[str]:
        return self._rooms_by_connection.get(connection_id)

    def unbind(self, connection_id: str) -> Optional[str]:
        return self._rooms_by_connection.pop(connection_id, None)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._rooms_by_connection

    def __len__(self) -> int:
        return len(self._rooms_by_connection)
