"""Service locator for the process-wide shared components."""

from typing import Optional

from filemanager.chunk_sessions import ChunkSessionStore
from filemanager.chunk_storage import ChunkScratchStorage
from filemanager.progress import ProgressRegistry

_progress_registry: Optional[ProgressRegistry] = None
_session_store: Optional[ChunkSessionStore] = None
_scratch_storage: Optional[ChunkScratchStorage] = None


def set_progress_registry(registry: ProgressRegistry):
    """Set global progress registry instance"""
    global _progress_registry
    _progress_registry = registry


def get_progress_registry() -> ProgressRegistry:
    """Get global progress registry instance, creating it on first use"""
    global _progress_registry
    if _progress_registry is None:
        _progress_registry = ProgressRegistry()
    return _progress_registry


def set_session_store(store: ChunkSessionStore):
    """Set global chunk session store instance"""
    global _session_store
    _session_store = store


def get_session_store() -> ChunkSessionStore:
    """Get global chunk session store instance, creating it on first use"""
    global _session_store
    if _session_store is None:
        _session_store = ChunkSessionStore()
    return _session_store


def set_scratch_storage(storage: ChunkScratchStorage):
    """Set global scratch storage instance"""
    global _scratch_storage
    _scratch_storage = storage


def get_scratch_storage() -> ChunkScratchStorage:
    """Get global scratch storage instance, creating it on first use"""
    global _scratch_storage
    if _scratch_storage is None:
        _scratch_storage = ChunkScratchStorage()
    return _scratch_storage
