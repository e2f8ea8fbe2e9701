"""Real-time event payloads.

Every frame on the wire is ``{"event": <name>, "data": <payload>}``. Incoming
frames are parsed into one of the ``IncomingEvent`` variants; anything that
does not match is dropped by the relay. Outgoing frames are built from the
``*Event`` models below and serialized with ``model_dump(mode="json")``.
"""
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# Message records

class TextMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    message: str
    timestamp: datetime
    sender: str


class FileMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["file"] = "file"
    fileName: str
    fileSize: int
    downloadUrl: str
    timestamp: datetime
    sender: str


MessageRecord = Annotated[Union[TextMessage, FileMessage], Field(discriminator="type")]


# Incoming

class SendMessagePayload(BaseModel):
    message: str = Field(..., min_length=1)


class JoinRoomEvent(BaseModel):
    event: Literal["join-room"]
    data: str = Field(..., min_length=1)


class SendMessageEvent(BaseModel):
    event: Literal["send-message"]
    data: SendMessagePayload


class TypingEvent(BaseModel):
    event: Literal["typing"]
    data: Optional[Any] = None


class StopTypingEvent(BaseModel):
    event: Literal["stop-typing"]
    data: Optional[Any] = None


IncomingEvent = Annotated[
    Union[JoinRoomEvent, SendMessageEvent, TypingEvent, StopTypingEvent],
    Field(discriminator="event"),
]

incoming_event_adapter = TypeAdapter(IncomingEvent)


# Outgoing

class Presence(BaseModel):
    message: str
    userCount: int


class JoinedPayload(BaseModel):
    roomId: str
    userCount: int


class PreviousMessagesEvent(BaseModel):
    event: Literal["previous-messages"] = "previous-messages"
    data: List[MessageRecord]


class UserJoinedEvent(BaseModel):
    event: Literal["user-joined"] = "user-joined"
    data: Presence


class JoinedSuccessfullyEvent(BaseModel):
    event: Literal["joined-successfully"] = "joined-successfully"
    data: JoinedPayload


class ErrorEvent(BaseModel):
    event: Literal["error"] = "error"
    data: str


class NewMessageEvent(BaseModel):
    event: Literal["new-message"] = "new-message"
    data: TextMessage


class UserTypingEvent(BaseModel):
    event: Literal["user-typing"] = "user-typing"
    data: None = None


class UserStopTypingEvent(BaseModel):
    event: Literal["user-stop-typing"] = "user-stop-typing"
    data: None = None


class UserLeftEvent(BaseModel):
    event: Literal["user-left"] = "user-left"
    data: Presence


class FileSharedEvent(BaseModel):
    event: Literal["file-shared"] = "file-shared"
    data: FileMessage


OutgoingEvent = Union[
    PreviousMessagesEvent,
    UserJoinedEvent,
    JoinedSuccessfullyEvent,
    ErrorEvent,
    NewMessageEvent,
    UserTypingEvent,
    UserStopTypingEvent,
    UserLeftEvent,
    FileSharedEvent,
]
