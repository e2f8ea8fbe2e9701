from datetime import datetime

from pydantic import BaseModel


class CreateRoomResponse(BaseModel):
    roomId: str
    joinLink: str


class RoomDetailsResponse(BaseModel):
    roomId: str
    createdAt: datetime
    userCount: int
    maxUsers: int
    isFull: bool


class UploadResponse(BaseModel):
    originalName: str
    filename: str
    size: int
    downloadUrl: str


class HealthResponse(BaseModel):
    status: str
    rooms: int
    connections: int
