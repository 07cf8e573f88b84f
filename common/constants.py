"""Project-wide constants (buffer sizes, defaults, progress cadence)."""

COPY_BUFFER_SIZE: int = 64 * 1024  # every streamed copy goes through this buffer

DEFAULT_CHUNK_SIZE: int = 64 * 1024
DEFAULT_MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024 * 1024

DEFAULT_COMPRESSION_LEVEL: int = 6
MIN_COMPRESSION_LEVEL: int = 0
MAX_COMPRESSION_LEVEL: int = 9

PROGRESS_STREAM_INTERVAL_SECONDS: float = 0.5
PROGRESS_REGISTRY_SHARDS: int = 16

DEFAULT_SSH_PORT: int = 22
DEFAULT_SSH_USERNAME: str = "root"
DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS: float = 15.0

SCRATCH_DIR_NAME: str = "filemanager-chunks"
CHUNK_FILE_SUFFIX: str = ".part"

DEFAULT_UPLOAD_FILENAME: str = "uploaded_file"
DEFAULT_DIR_MODE: int = 0o755
