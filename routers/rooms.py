import asyncio
import os
import re
import uuid
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from constants import MAX_UPLOAD_BYTES, MULTIPART_OVERHEAD_BYTES, UPLOAD_CHUNK_SIZE, UPLOAD_URL_PREFIX
from logging_config import get_logger
from relay import RelayEngine
from schemas.rooms import CreateRoomResponse, HealthResponse, RoomDetailsResponse, UploadResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api", tags=["rooms"])

UPLOAD_PATH_PREFIX = "/api/upload/"

_EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,16}$")


def get_relay(request: Request) -> RelayEngine:
    return request.app.state.relay


def artifact_name(original_name: str) -> str:
    """Unique artifact filename: uuid4 plus the original extension when it is sane."""
    extension = os.path.splitext(os.path.basename(original_name))[1]
    if not _EXTENSION_RE.match(extension):
        extension = ""
    return f"{uuid.uuid4()}{extension}"


async def reject_oversized_uploads(request: Request, call_next):
    """HTTP middleware: refuse uploads whose declared size is over the cap before the body is parsed."""
    if request.method == "POST" and request.url.path.startswith(UPLOAD_PATH_PREFIX):
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > MAX_UPLOAD_BYTES + MULTIPART_OVERHEAD_BYTES:
            logger.info(f"Upload to {request.url.path} rejected early: {declared} bytes declared")
            return JSONResponse({"error": "File too large"}, status_code=413)
    return await call_next(request)


@rooms_router.get("/create-room", response_model=CreateRoomResponse)
async def create_room(request: Request):
    relay = get_relay(request)
    room = relay.registry.create_room()
    base_url = str(request.base_url).rstrip("/")
    join_link = f"{base_url}/room/{room.id}"
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room {room.id} created for {client_host}")
    return CreateRoomResponse(roomId=room.id, joinLink=join_link)


@rooms_router.get("/rooms/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    room = get_relay(request).registry.get(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return RoomDetailsResponse(
        roomId=room.id,
        createdAt=room.created_at,
        userCount=room.user_count,
        maxUsers=room.capacity,
        isFull=room.is_full,
    )


@rooms_router.post("/upload/{room_id}", response_model=UploadResponse)
async def upload_file(room_id: str, request: Request, file: Optional[UploadFile] = File(None)):
    """Store one file in the artifact store and announce it to the room."""
    if file is None or not file.filename:
        logger.info(f"Upload for room {room_id} rejected: no file")
        raise HTTPException(status_code=400, detail="No file uploaded")

    relay = get_relay(request)
    if room_id not in relay.registry:
        logger.info(f"Upload rejected: room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    upload_dir = request.app.state.upload_dir
    os.makedirs(upload_dir, exist_ok=True)
    filename = artifact_name(file.filename)
    target = os.path.join(upload_dir, filename)

    # Stream to disk with a size limit. Disk writes run off the event loop.
    size = 0
    try:
        f = await asyncio.to_thread(open, target, "wb")
        try:
            while True:
                chunk = await file.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > MAX_UPLOAD_BYTES:
                    raise HTTPException(status_code=413, detail="File too large")
                await asyncio.to_thread(f.write, chunk)
        finally:
            await asyncio.to_thread(f.close)
    except BaseException:
        _remove_quietly(target)
        raise
    finally:
        await file.close()

    download_url = f"{UPLOAD_URL_PREFIX}/{filename}"
    # The room may have emptied while the bytes were arriving.
    shared = relay.share_file(room_id, file_name=file.filename, file_size=size, download_url=download_url)
    if shared is None:
        _remove_quietly(target)
        raise HTTPException(status_code=404, detail="Room not found")

    logger.info(f"Upload {filename} ({size} bytes) stored for room {room_id}")
    return UploadResponse(
        originalName=file.filename,
        filename=filename,
        size=size,
        downloadUrl=download_url,
    )


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial upload {path}: {e}")


@rooms_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    relay = get_relay(request)
    return HealthResponse(status="ok", rooms=len(relay.registry), connections=len(request.app.state.transport))
