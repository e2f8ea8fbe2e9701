import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")
PUBLIC_DIR = os.getenv("PUBLIC_DIR", "./public")
UPLOAD_URL_PREFIX = "/uploads"

# Replay file shares to late joiners. Off by default: uploads are broadcast only.
RECORD_FILE_SHARES = os.getenv("RECORD_FILE_SHARES", "false").lower() == "true"

MAX_ROOM_MEMBERS = 2
ROOM_ID_LENGTH = 8

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
UPLOAD_CHUNK_SIZE = 64 * 1024

SWEEP_INTERVAL_SECONDS = 60 * 60
ARTIFACT_MAX_AGE_SECONDS = 60 * 60

# Frames queued for one connection before it is treated as a stalled reader.
OUTBOX_MAX_FRAMES = 256
SLOW_CONSUMER_CLOSE_CODE = 1008

# Allowance for multipart boundaries and part headers on top of the file itself.
MULTIPART_OVERHEAD_BYTES = 64 * 1024
