import os

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse, PlainTextResponse

from logging_config import get_logger

logger = get_logger(__name__)

pages_router = APIRouter(include_in_schema=False)


def _page(public_dir: str, name: str):
    path = os.path.join(public_dir, name)
    if not os.path.isfile(path):
        logger.error(f"Page {path} is missing")
        return PlainTextResponse("Not found", status_code=404)
    return FileResponse(path)


@pages_router.get("/room/{room_id}")
async def room_page(room_id: str, request: Request):
    if room_id not in request.app.state.relay.registry:
        return PlainTextResponse("Room not found or expired", status_code=404)
    return _page(request.app.state.public_dir, "room.html")


@pages_router.get("/{path:path}")
async def fallback(path: str, request: Request):
    """Static assets from the public directory, otherwise the homepage."""
    if path == "api" or path.startswith("api/"):
        raise HTTPException(status_code=404, detail="API endpoint not found")

    public_dir = request.app.state.public_dir
    root = os.path.realpath(public_dir)
    candidate = os.path.realpath(os.path.join(root, path))
    if path and candidate.startswith(root + os.sep) and os.path.isfile(candidate):
        return FileResponse(candidate)
    return _page(public_dir, "index.html")
