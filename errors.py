class RelayError(Exception):
    """A join failure reported back to the client through the ``error`` event."""

    reason = "Relay error"

    def __init__(self, room_id: str):
        super().__init__(f"{self.reason}: {room_id}")
        self.room_id = room_id


class RoomNotFound(RelayError):
    reason = "Room not found"


class RoomFull(RelayError):
    reason = "Room is full"
