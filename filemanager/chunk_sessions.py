"""In-memory store of chunked-upload sessions awaiting their chunks."""

import dataclasses
import math
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from common.logging_config import get_logger

logger = get_logger(__name__)


class ChunkSessionState(str, Enum):
    PENDING = "pending"
    RECEIVING = "receiving"
    FINALIZING = "finalizing"
    DONE = "done"


def count_chunks(total_size: int, chunk_size: int) -> int:
    return math.ceil(total_size / chunk_size)


@dataclass
class ChunkSession:
    """
    Server-side state of one chunked upload.

    The session id doubles as the progress record id.
    """
    id: str
    tenant: str
    filename: str
    destination: str
    total_size: int
    chunk_size: int
    total_chunks: int
    scratch_dir: str
    received: Set[int] = field(default_factory=set)
    state: ChunkSessionState = ChunkSessionState.PENDING
    created_at: float = field(default_factory=time.monotonic)

    @property
    def is_complete(self) -> bool:
        return len(self.received) == self.total_chunks

    def chunk_length(self, index: int) -> int:
        """Exact size of chunk ``index``; only the last chunk may be short."""
        if index == self.total_chunks - 1:
            return self.total_size - index * self.chunk_size
        return self.chunk_size

    def bytes_received(self) -> int:
        return sum(self.chunk_length(index) for index in self.received)


class ChunkSessionStore:
    """
    Thread-safe map of session id to :class:`ChunkSession`.

    The lock is held only while the index set or the map itself changes,
    never while chunk bytes are written.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, ChunkSession] = {}

    def add(self, session: ChunkSession) -> None:
        with self._lock:
            self._sessions[session.id] = session

    def get(self, session_id: str) -> Optional[ChunkSession]:
        """Snapshot of a session, or None when the id is unknown."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return dataclasses.replace(session, received=set(session.received))

    def record_index(self, session_id: str, index: int) -> Optional[ChunkSession]:
        """
        Mark a chunk index as received.

        Args:
            session_id: Session the chunk belongs to
            index: Zero-based chunk index, already validated

        Returns:
            Snapshot after recording, or None if the session is gone
            (finalized or abandoned meanwhile)
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            session.received.add(index)
            if session.state == ChunkSessionState.PENDING:
                session.state = ChunkSessionState.RECEIVING
            return dataclasses.replace(session, received=set(session.received))

    def pop(self, session_id: str) -> Optional[ChunkSession]:
        """
        Remove a session and hand it to the caller.

        Only one caller can ever receive a given session, which is what
        makes finalization happen exactly once.
        """
        with self._lock:
            return self._sessions.pop(session_id, None)

    def purge_abandoned(self, older_than_seconds: float) -> List[ChunkSession]:
        """
        Remove sessions that were created more than ``older_than_seconds`` ago.

        Returns:
            The removed sessions, so the caller can release their scratch space
        """
        cutoff = time.monotonic() - older_than_seconds
        with self._lock:
            stale = [s for s in self._sessions.values() if s.created_at <= cutoff]
            for session in stale:
                del self._sessions[session.id]
        if stale:
            logger.info(f"Purged {len(stale)} abandoned chunk sessions")
        return stale

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
