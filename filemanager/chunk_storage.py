"""Manages chunk scratch files on local disk: write, stream back and remove."""

import os
import shutil
from pathlib import Path
from typing import Iterator, List, Optional

from common.constants import CHUNK_FILE_SUFFIX, COPY_BUFFER_SIZE
from common.logging_config import get_logger
from filemanager import config
from filemanager.backends.errors import os_errors

logger = get_logger(__name__)


class ChunkScratchStorage:
    """
    Per-session scratch directories holding one file per received chunk.

    Chunks always land on the service's own disk, whatever backend the
    tenant uses; only the assembled file is written through the backend.
    """

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or config.SCRATCH_DIR)

    def ensure_base_directory(self) -> None:
        """Ensure the scratch base directory exists."""
        with os_errors(str(self.base_dir)):
            self.base_dir.mkdir(parents=True, exist_ok=True)

    def session_dir(self, session_id: str) -> Path:
        return self.base_dir / session_id

    def create_session(self, session_id: str) -> str:
        """
        Allocate the scratch directory for a new session.

        Args:
            session_id: UUID of the chunk session

        Returns:
            String path of the session directory
        """
        self.ensure_base_directory()
        directory = self.session_dir(session_id)
        with os_errors(str(directory)):
            directory.mkdir(exist_ok=True)
        return str(directory)

    def get_chunk_path(self, session_id: str, index: int) -> Path:
        """
        Get file path for one chunk of a session.

        Zero-padded names keep the directory listing in index order.
        """
        return self.session_dir(session_id) / f"{index:08d}{CHUNK_FILE_SUFFIX}"

    def write_chunk(self, session_id: str, index: int, data: bytes) -> str:
        """
        Write chunk data to its scratch file, replacing any earlier copy.

        Args:
            session_id: UUID of the chunk session
            index: Zero-based chunk index
            data: Raw chunk bytes

        Returns:
            String path to the written file

        Raises:
            IOFailureError: If the write fails
        """
        filepath = self.get_chunk_path(session_id, index)
        with os_errors(str(filepath)):
            filepath.write_bytes(data)
        return str(filepath)

    def read_chunk_streaming(
        self, session_id: str, index: int, piece_size: int = COPY_BUFFER_SIZE
    ) -> Iterator[bytes]:
        """
        Stream chunk data in pieces.

        Args:
            session_id: UUID of the chunk session
            index: Zero-based chunk index
            piece_size: Size of each piece in bytes (default 64KB)

        Yields:
            Chunk data pieces

        Raises:
            NotFoundError: If the chunk was never written
        """
        filepath = self.get_chunk_path(session_id, index)
        with os_errors(str(filepath)):
            with open(filepath, "rb") as f:
                while True:
                    piece = f.read(piece_size)
                    if not piece:
                        break
                    yield piece

    def list_chunks(self, session_id: str) -> List[int]:
        """
        List the chunk indices present in a session directory.

        Returns:
            Sorted chunk indices
        """
        directory = self.session_dir(session_id)
        if not directory.exists():
            return []
        return sorted(int(path.stem) for path in directory.glob(f"*{CHUNK_FILE_SUFFIX}"))

    def remove_session(self, session_id: str) -> bool:
        """
        Delete a session's scratch directory and every chunk in it.

        Returns:
            True if the directory was removed, False if it did not exist
        """
        directory = self.session_dir(session_id)
        if not directory.exists():
            return False
        try:
            shutil.rmtree(directory)
        except OSError as e:
            logger.warning(f"Failed to remove scratch directory {directory}: {e}")
            return False
        logger.debug(f"Removed scratch directory {directory}")
        return True

    def list_sessions(self) -> List[str]:
        """List session ids that currently own a scratch directory."""
        if not self.base_dir.exists():
            return []
        return sorted(entry.name for entry in os.scandir(self.base_dir) if entry.is_dir())
