"""In-memory progress registry: operation id -> live progress record.

The registry is the only structure written by many concurrent operations.
It is split into shards, each guarded by its own lock, and an id always maps
to the same shard, so unrelated operations rarely contend. Readers only ever
receive copies of records.
"""

import asyncio
import dataclasses
import threading
import time
import zlib
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

from common.constants import PROGRESS_REGISTRY_SHARDS, PROGRESS_STREAM_INTERVAL_SECONDS
from common.logging_config import get_logger
from filemanager.exceptions import NotFoundError

logger = get_logger(__name__)


class ProgressStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProgressStatus.COMPLETED, ProgressStatus.FAILED)


def compute_percentage(transferred: int, total: int) -> int:
    """Floor percentage; 0 while the total is unknown."""
    if total <= 0:
        return 0
    return (transferred * 100) // total


@dataclass
class ProgressRecord:
    """
    Mutable status of one long-running operation.
    """
    id: str
    filename: Optional[str] = None
    transferred_bytes: int = 0
    total_bytes: int = 0
    percentage: int = 0
    status: ProgressStatus = ProgressStatus.PENDING
    error: Optional[str] = None
    path: Optional[str] = None
    updated_at: float = field(default_factory=time.monotonic)

    def to_dict(self) -> Dict[str, object]:
        data = {
            "id": self.id,
            "filename": self.filename,
            "path": self.path,
            "percentage": self.percentage,
            "transferred_bytes": self.transferred_bytes,
            "total_bytes": self.total_bytes,
            "status": self.status.value,
            "error": self.error,
        }
        return {key: value for key, value in data.items() if value is not None}


class _Shard:
    __slots__ = ("lock", "records")

    def __init__(self):
        self.lock = threading.Lock()
        self.records: Dict[str, ProgressRecord] = {}


class ProgressRegistry:
    """
    Concurrency-safe map from operation id to :class:`ProgressRecord`.

    Each record has a single writer (the operation that created it); any
    number of observers may poll it through :meth:`get`, :meth:`watch` or
    :meth:`awatch`.
    """

    def __init__(self, shards: int = PROGRESS_REGISTRY_SHARDS):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._shards = [_Shard() for _ in range(shards)]

    def _shard(self, op_id: str) -> _Shard:
        return self._shards[zlib.crc32(op_id.encode("utf-8")) % len(self._shards)]

    def create(self, op_id: str, initial: Optional[ProgressRecord] = None) -> ProgressRecord:
        """
        Register a record for a new operation, replacing any previous one.

        Args:
            op_id: Operation identifier
            initial: Starting state; a fresh pending record when omitted

        Returns:
            Snapshot of the stored record
        """
        record = dataclasses.replace(initial) if initial is not None else ProgressRecord(id=op_id)
        record.id = op_id
        record.percentage = compute_percentage(record.transferred_bytes, record.total_bytes)
        record.updated_at = time.monotonic()

        shard = self._shard(op_id)
        with shard.lock:
            shard.records[op_id] = record
            return dataclasses.replace(record)

    def get(self, op_id: str) -> Optional[ProgressRecord]:
        """
        Snapshot of a record, or None when the id is unknown.
        """
        shard = self._shard(op_id)
        with shard.lock:
            record = shard.records.get(op_id)
            return dataclasses.replace(record) if record is not None else None

    def require(self, op_id: str) -> ProgressRecord:
        record = self.get(op_id)
        if record is None:
            raise NotFoundError(f"progress record not found: {op_id}")
        return record

    def update(self, op_id: str, transferred_delta: int) -> Optional[ProgressRecord]:
        """
        Add transferred bytes to a record and recompute its percentage.

        Args:
            op_id: Operation identifier
            transferred_delta: Non-negative number of newly moved bytes

        Returns:
            Snapshot after the update, or None when the id is unknown

        Raises:
            ValueError: If the delta is negative
        """
        if transferred_delta < 0:
            raise ValueError(f"transferred delta must be non-negative, got {transferred_delta}")

        shard = self._shard(op_id)
        with shard.lock:
            record = shard.records.get(op_id)
            if record is None:
                return None
            record.transferred_bytes += transferred_delta
            record.percentage = compute_percentage(record.transferred_bytes, record.total_bytes)
            record.updated_at = time.monotonic()
            return dataclasses.replace(record)

    def advance_to(self, op_id: str, transferred: int) -> Optional[ProgressRecord]:
        """
        Raise the transferred count to ``transferred`` if it is higher.

        The count never goes down, which keeps observers monotonic even when
        the caller recomputes an absolute value.
        """
        shard = self._shard(op_id)
        with shard.lock:
            record = shard.records.get(op_id)
            if record is None:
                return None
            if transferred > record.transferred_bytes:
                record.transferred_bytes = transferred
                record.percentage = compute_percentage(record.transferred_bytes, record.total_bytes)
            record.updated_at = time.monotonic()
            return dataclasses.replace(record)

    def set_status(self, op_id: str, status: ProgressStatus) -> Optional[ProgressRecord]:
        shard = self._shard(op_id)
        with shard.lock:
            record = shard.records.get(op_id)
            if record is None:
                return None
            record.status = status
            record.updated_at = time.monotonic()
            return dataclasses.replace(record)

    def set_total(self, op_id: str, total_bytes: int) -> Optional[ProgressRecord]:
        shard = self._shard(op_id)
        with shard.lock:
            record = shard.records.get(op_id)
            if record is None:
                return None
            record.total_bytes = total_bytes
            record.percentage = compute_percentage(record.transferred_bytes, record.total_bytes)
            record.updated_at = time.monotonic()
            return dataclasses.replace(record)

    def set_path(self, op_id: str, path: str, filename: Optional[str] = None) -> Optional[ProgressRecord]:
        """Attach the produced artifact (and its final name) to a record."""
        shard = self._shard(op_id)
        with shard.lock:
            record = shard.records.get(op_id)
            if record is None:
                return None
            record.path = path
            if filename is not None:
                record.filename = filename
            record.updated_at = time.monotonic()
            return dataclasses.replace(record)

    def mark_failed(self, op_id: str, message: str) -> Optional[ProgressRecord]:
        shard = self._shard(op_id)
        with shard.lock:
            record = shard.records.get(op_id)
            if record is None:
                return None
            record.status = ProgressStatus.FAILED
            record.error = message
            record.updated_at = time.monotonic()
            return dataclasses.replace(record)

    def mark_completed(self, op_id: str) -> Optional[ProgressRecord]:
        """Force a record to its finished state (transferred = total, 100%)."""
        shard = self._shard(op_id)
        with shard.lock:
            record = shard.records.get(op_id)
            if record is None:
                return None
            record.status = ProgressStatus.COMPLETED
            record.transferred_bytes = record.total_bytes
            record.percentage = 100
            record.updated_at = time.monotonic()
            return dataclasses.replace(record)

    def purge(self, older_than_seconds: float) -> List[str]:
        """
        Drop terminal records untouched for ``older_than_seconds``.

        Returns:
            Ids of the removed records
        """
        cutoff = time.monotonic() - older_than_seconds
        removed = []
        for shard in self._shards:
            with shard.lock:
                stale = [
                    op_id for op_id, record in shard.records.items()
                    if record.status.is_terminal and record.updated_at <= cutoff
                ]
                for op_id in stale:
                    del shard.records[op_id]
            removed.extend(stale)
        if removed:
            logger.info(f"Purged {len(removed)} finished progress records")
        return removed

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.records)
        return total

    async def awatch(
        self,
        op_id: str,
        interval: float = PROGRESS_STREAM_INTERVAL_SECONDS,
    ) -> AsyncIterator[ProgressRecord]:
        """
        Yield a snapshot every ``interval`` seconds until the operation ends.

        The terminal snapshot is yielded once, then iteration stops.

        Raises:
            NotFoundError: If the record is (or becomes) absent
        """
        while True:
            record = self.require(op_id)
            yield record
            if record.status.is_terminal:
                return
            await asyncio.sleep(interval)
