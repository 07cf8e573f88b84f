"""Configuration settings for the file manager service."""

import os
import tempfile

from common.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_UPLOAD_SIZE,
    DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS,
    SCRATCH_DIR_NAME,
)


BASE_PATH = os.environ.get("FM_BASE_PATH", "/home")

API_KEY = os.environ.get("FM_API_KEY", "filemanager-secret-key")

FILEMANAGER_HOST = os.environ.get("FM_HOST", "0.0.0.0")

FILEMANAGER_PORT = int(os.environ.get("FM_PORT", "4000"))

MAX_UPLOAD_SIZE = int(os.environ.get("FM_MAX_UPLOAD_SIZE", str(DEFAULT_MAX_UPLOAD_SIZE)))

DEFAULT_UPLOAD_CHUNK_SIZE = int(os.environ.get("FM_DEFAULT_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE)))

SCRATCH_DIR = os.environ.get(
    "FM_SCRATCH_DIR", os.path.join(tempfile.gettempdir(), SCRATCH_DIR_NAME)
)

SSH_CONNECT_TIMEOUT = float(
    os.environ.get("FM_SSH_CONNECT_TIMEOUT", str(DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS))
)

# 0 disables reaping for the corresponding kind of record
PROGRESS_TTL_SECONDS = int(os.environ.get("FM_PROGRESS_TTL_SECONDS", "0"))

CHUNK_SESSION_TTL_SECONDS = int(os.environ.get("FM_CHUNK_SESSION_TTL_SECONDS", "0"))

REAPER_INTERVAL_SECONDS = int(os.environ.get("FM_REAPER_INTERVAL_SECONDS", "300"))
