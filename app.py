import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend import ConnectionTracker, RoomRegistry
from constants import (
    ARTIFACT_MAX_AGE_SECONDS,
    LOG_FILE,
    LOG_LEVEL,
    PUBLIC_DIR,
    RECORD_FILE_SHARES,
    SWEEP_INTERVAL_SECONDS,
    UPLOAD_DIR,
    UPLOAD_URL_PREFIX,
)
from logging_config import get_logger, setup_logging
from relay import RelayEngine
from routers.pages import pages_router
from routers.realtime import realtime_router
from routers.rooms import reject_oversized_uploads, rooms_router
from sweeper import RetentionSweeper
from transport import WebSocketTransport

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    os.makedirs(app.state.upload_dir, exist_ok=True)
    app.state.sweeper.start()
    logger.info("Anonichat server started")
    try:
        yield
    finally:
        await app.state.sweeper.stop()
        logger.info("Anonichat server stopped")


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


def create_app(
    upload_dir: str = UPLOAD_DIR,
    public_dir: str = PUBLIC_DIR,
    sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    max_age: float = ARTIFACT_MAX_AGE_SECONDS,
    record_file_shares: bool = RECORD_FILE_SHARES,
) -> FastAPI:
    """Build an app that owns its own rooms, connections and sweeper."""
    app = FastAPI(title="Anonichat", lifespan=lifespan)

    app.middleware("http")(reject_oversized_uploads)

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    transport = WebSocketTransport()
    app.state.upload_dir = upload_dir
    app.state.public_dir = public_dir
    app.state.transport = transport
    app.state.relay = RelayEngine(
        RoomRegistry(),
        ConnectionTracker(),
        transport,
        record_file_shares=record_file_shares,
    )
    app.state.sweeper = RetentionSweeper(upload_dir, max_age=max_age, interval=sweep_interval)

    app.mount(UPLOAD_URL_PREFIX, StaticFiles(directory=upload_dir, check_dir=False), name="uploads")
    app.include_router(rooms_router)
    app.include_router(realtime_router)
    # Catch-all last.
    app.include_router(pages_router)

    logger.info(f"FastAPI application initialized (uploads in {upload_dir})")
    return app


app = create_app()
