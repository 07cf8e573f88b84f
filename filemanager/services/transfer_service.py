"""Upload transfers: single-shot streaming and chunked-session reassembly."""

import posixpath
from typing import BinaryIO, Optional

from common.logging_config import get_logger
from filemanager import config
from filemanager.backends.base import StorageBackend
from filemanager.chunk_sessions import (
    ChunkSession,
    ChunkSessionState,
    ChunkSessionStore,
    count_chunks,
)
from filemanager.chunk_storage import ChunkScratchStorage
from filemanager.exceptions import (
    FileManagerError,
    InvalidRequestError,
    NotAFolderError,
    NotFoundError,
)
from filemanager.ownership import OwnershipEnforcer
from filemanager.progress import ProgressRecord, ProgressRegistry, ProgressStatus
from filemanager.sandbox import PathSandbox
from filemanager.utils import copy_stream, generate_uuid, safe_filename, unique_path

logger = get_logger(__name__)


class TransferService:
    """
    Moves uploaded bytes into a tenant's storage with live progress.

    One instance serves one request: it is bound to the backend opened for
    that request. The registry, the session store and the scratch storage
    are shared process-wide so a chunked upload can span many requests.
    """

    def __init__(
        self,
        backend: StorageBackend,
        sandbox: PathSandbox,
        registry: ProgressRegistry,
        sessions: ChunkSessionStore,
        scratch: ChunkScratchStorage,
        ownership: OwnershipEnforcer,
        tenant: str,
    ):
        self.backend = backend
        self.sandbox = sandbox
        self.registry = registry
        self.sessions = sessions
        self.scratch = scratch
        self.ownership = ownership
        self.tenant = tenant

    def _ensure_directory(self, directory: str) -> None:
        if self.backend.exists(directory):
            if not self.backend.stat(directory).is_dir:
                raise NotAFolderError(f"{self.sandbox.relative_of(directory)}: not a folder")
            return
        self.backend.mkdir_all(directory)

    def stream_upload(
        self,
        filename: Optional[str],
        destination: str,
        source: BinaryIO,
        declared_size: int = 0,
    ) -> str:
        """
        Stream one upload straight into the destination directory.

        Args:
            filename: Client-supplied name, reduced to its base name
            destination: Tenant-relative target directory
            source: Readable binary stream with the file content
            declared_size: Expected size in bytes, 0 when unknown

        Returns:
            Operation id; a copy failure is reported through the record,
            not raised

        Raises:
            TraversalRejectedError: If the destination escapes the tenant root
            NotAFolderError: If the destination is an existing file
        """
        directory = self.sandbox.resolve(destination)
        self._ensure_directory(directory)

        target = unique_path(posixpath.join(directory, safe_filename(filename)), self.backend.exists)
        name = posixpath.basename(target)

        op_id = generate_uuid()
        self.registry.create(op_id, ProgressRecord(
            id=op_id,
            filename=name,
            path=self.sandbox.relative_of(target),
            total_bytes=max(declared_size or 0, 0),
            status=ProgressStatus.UPLOADING,
        ))
        logger.info(f"Upload {op_id} started: {name} -> {directory} ({declared_size} bytes declared)")

        try:
            with self.backend.create(target) as handle:
                copied = copy_stream(
                    source,
                    handle,
                    on_progress=lambda n: self.registry.update(op_id, n),
                )
        except (FileManagerError, OSError) as e:
            self.registry.mark_failed(op_id, str(e))
            logger.error(f"Upload {op_id} failed while writing {target}: {e}")
            return op_id

        if not declared_size:
            # unknown size: settle the total on what actually arrived
            self.registry.set_total(op_id, copied)

        self.registry.mark_completed(op_id)
        self.ownership.apply(target)
        logger.info(f"Upload {op_id} completed: {copied} bytes written to {target}")
        return op_id

    def init_session(
        self,
        filename: Optional[str],
        destination: str,
        total_size: int,
        chunk_size: Optional[int] = None,
    ) -> ChunkSession:
        """
        Open a chunked upload session.

        Args:
            filename: Client-supplied name of the final file
            destination: Tenant-relative target directory
            total_size: Size of the complete file in bytes
            chunk_size: Size of every chunk but the last one

        Returns:
            The new session; its id is also the progress record id

        Raises:
            InvalidRequestError: On non-positive or oversize sizes
            TraversalRejectedError: If the destination escapes the tenant root
        """
        chunk_size = chunk_size or config.DEFAULT_UPLOAD_CHUNK_SIZE
        if total_size is None or total_size <= 0:
            raise InvalidRequestError("total_size must be positive")
        if chunk_size <= 0:
            raise InvalidRequestError("chunk_size must be positive")
        if total_size > config.MAX_UPLOAD_SIZE:
            raise InvalidRequestError(
                f"total_size {total_size} exceeds the upload limit of {config.MAX_UPLOAD_SIZE} bytes"
            )

        directory = self.sandbox.resolve(destination)
        if self.backend.exists(directory) and not self.backend.stat(directory).is_dir:
            raise NotAFolderError(f"{destination}: not a folder")

        session_id = generate_uuid()
        session = ChunkSession(
            id=session_id,
            tenant=self.tenant,
            filename=safe_filename(filename),
            destination=directory,
            total_size=total_size,
            chunk_size=chunk_size,
            total_chunks=count_chunks(total_size, chunk_size),
            scratch_dir=self.scratch.create_session(session_id),
        )
        self.sessions.add(session)
        self.registry.create(session_id, ProgressRecord(
            id=session_id,
            filename=session.filename,
            total_bytes=total_size,
            status=ProgressStatus.PENDING,
        ))

        logger.info(
            f"Chunked upload {session_id} opened for {self.tenant}: {session.filename}, "
            f"{total_size} bytes in {session.total_chunks} chunks of {chunk_size}"
        )
        return session

    def _get_own_session(self, session_id: str) -> ChunkSession:
        session = self.sessions.get(session_id)
        if session is None or session.tenant != self.tenant:
            raise NotFoundError(f"upload session not found: {session_id}")
        return session

    def put_chunk(self, session_id: str, index: int, data: bytes) -> ProgressRecord:
        """
        Store one chunk; the chunk that completes the set assembles the file.

        Re-sending an index overwrites the earlier copy and is counted once.

        Args:
            session_id: Id returned by :meth:`init_session`
            index: Zero-based chunk index
            data: Chunk bytes, ``chunk_size`` long except for a shorter last chunk

        Returns:
            Progress snapshot after this chunk

        Raises:
            NotFoundError: If the session is unknown, finished or foreign
            InvalidRequestError: On an out-of-range index or a chunk of the wrong size
        """
        session = self._get_own_session(session_id)

        if index < 0 or index >= session.total_chunks:
            raise InvalidRequestError(
                f"chunk index {index} out of range [0, {session.total_chunks})"
            )
        expected = session.chunk_length(index)
        if len(data) != expected:
            raise InvalidRequestError(f"chunk {index} is {len(data)} bytes, expected exactly {expected}")

        self.scratch.write_chunk(session_id, index, data)

        snapshot = self.sessions.record_index(session_id, index)
        if snapshot is None:
            raise NotFoundError(f"upload session not found: {session_id}")

        self.registry.set_status(session_id, ProgressStatus.UPLOADING)
        record = self.registry.advance_to(session_id, snapshot.bytes_received())
        logger.debug(
            f"Chunk {index} stored for {session_id} ({len(snapshot.received)}/{snapshot.total_chunks})"
        )

        if snapshot.is_complete:
            claimed = self.sessions.pop(session_id)
            # a concurrent final chunk may have claimed the session first
            if claimed is not None:
                self._assemble(claimed)
            record = self.registry.get(session_id) or record

        return record

    def _finalize(self, session_id: str) -> ProgressRecord:
        """
        Assemble a session's chunks into the destination file.

        Raises:
            NotFoundError: If the session was already finalized or never existed
        """
        self._get_own_session(session_id)
        session = self.sessions.pop(session_id)
        if session is None:
            raise NotFoundError(f"upload session not found: {session_id}")
        self._assemble(session)
        return self.registry.require(session_id)

    def _assemble(self, session: ChunkSession) -> None:
        session.state = ChunkSessionState.FINALIZING
        self.registry.set_status(session.id, ProgressStatus.PROCESSING)

        try:
            # scratch files can vanish under a cleanup sweep
            on_disk = set(self.scratch.list_chunks(session.id))
            missing = [
                i for i in range(session.total_chunks)
                if i not in session.received or i not in on_disk
            ]
            if missing:
                raise InvalidRequestError(f"upload {session.id} is missing chunks {missing}")

            self._ensure_directory(session.destination)
            target = unique_path(
                posixpath.join(session.destination, session.filename), self.backend.exists
            )
            with self.backend.create(target) as handle:
                for index in range(session.total_chunks):
                    for piece in self.scratch.read_chunk_streaming(session.id, index):
                        handle.write(piece)
        except (FileManagerError, OSError) as e:
            self.registry.mark_failed(session.id, str(e))
            logger.error(f"Assembling upload {session.id} failed: {e}")
            raise
        finally:
            self.scratch.remove_session(session.id)

        session.state = ChunkSessionState.DONE
        self.registry.set_path(
            session.id, self.sandbox.relative_of(target), posixpath.basename(target)
        )
        self.ownership.apply(target)
        self.registry.mark_completed(session.id)
        logger.info(f"Chunked upload {session.id} assembled into {target}")

    def abandon_session(self, session_id: str) -> None:
        """
        Discard an unfinished session and its scratch chunks.

        Raises:
            NotFoundError: If the session is unknown, finished or foreign
        """
        self._get_own_session(session_id)
        session = self.sessions.pop(session_id)
        if session is None:
            raise NotFoundError(f"upload session not found: {session_id}")

        self.scratch.remove_session(session_id)
        self.registry.mark_failed(session_id, "upload abandoned")
        logger.info(f"Chunked upload {session_id} abandoned with {len(session.received)} chunks received")

    def get_progress(self, op_id: str) -> ProgressRecord:
        return self.registry.require(op_id)
