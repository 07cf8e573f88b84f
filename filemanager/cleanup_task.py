"""Background task for reaping finished progress records and abandoned uploads."""

import asyncio
from typing import Optional

from common.logging_config import get_logger
from filemanager import config
from filemanager.chunk_sessions import ChunkSessionStore
from filemanager.chunk_storage import ChunkScratchStorage
from filemanager.progress import ProgressRegistry

logger = get_logger(__name__)


class StaleRecordReaper:
    """
    Background task that periodically drops stale in-memory state.

    Both kinds of reaping are opt-in: a TTL of 0 leaves that kind of
    record alone, which is the default.
    """

    def __init__(
        self,
        registry: ProgressRegistry,
        sessions: ChunkSessionStore,
        scratch: ChunkScratchStorage,
        interval_seconds: Optional[float] = None,
        progress_ttl_seconds: Optional[float] = None,
        session_ttl_seconds: Optional[float] = None,
    ):
        """
        Initialize reaper task.

        Args:
            registry: Shared progress registry
            sessions: Shared chunk session store
            scratch: Scratch storage holding the sessions' chunks
            interval_seconds: Time between cycles (default from config)
            progress_ttl_seconds: Age after which finished records go (0 = never)
            session_ttl_seconds: Age after which open sessions go (0 = never)
        """
        self.registry = registry
        self.sessions = sessions
        self.scratch = scratch
        self.interval_seconds = interval_seconds or config.REAPER_INTERVAL_SECONDS
        self.progress_ttl_seconds = (
            config.PROGRESS_TTL_SECONDS if progress_ttl_seconds is None else progress_ttl_seconds
        )
        self.session_ttl_seconds = (
            config.CHUNK_SESSION_TTL_SECONDS if session_ttl_seconds is None else session_ttl_seconds
        )
        self._running = False
        self._task = None

    @property
    def enabled(self) -> bool:
        return self.progress_ttl_seconds > 0 or self.session_ttl_seconds > 0

    async def start(self) -> None:
        """Start the background reaper task if any TTL is configured."""
        if not self.enabled:
            logger.info("Stale record reaper disabled (no TTL configured)")
            return

        if self._running:
            logger.warning("Reaper task already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started stale record reaper (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background reaper task."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("Stopped stale record reaper")

    async def _run(self) -> None:
        """Main loop for reaper task."""
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if not self._running:
                    break

                self.reap_once()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in reaper task: {e}", exc_info=True)

    def reap_once(self) -> int:
        """
        Execute one reaping cycle.

        Returns:
            Number of progress records and sessions removed
        """
        removed = 0

        if self.session_ttl_seconds > 0:
            for session in self.sessions.purge_abandoned(self.session_ttl_seconds):
                self.scratch.remove_session(session.id)
                self.registry.mark_failed(session.id, "upload abandoned")
                logger.info(
                    f"Reaped abandoned upload {session.id} for {session.tenant} "
                    f"({len(session.received)}/{session.total_chunks} chunks received)"
                )
                removed += 1

        if self.progress_ttl_seconds > 0:
            removed += len(self.registry.purge(self.progress_ttl_seconds))

        return removed
