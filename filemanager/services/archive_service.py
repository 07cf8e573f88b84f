"""Zip archive creation and traversal-safe extraction over a storage backend."""

import posixpath
import stat
import time
import zipfile
import zlib
from typing import Callable, List, Sequence, Tuple

from common.constants import (
    DEFAULT_COMPRESSION_LEVEL,
    MAX_COMPRESSION_LEVEL,
    MIN_COMPRESSION_LEVEL,
)
from common.logging_config import get_logger
from common.types import FileStat
from filemanager.backends.base import StorageBackend
from filemanager.exceptions import (
    FileManagerError,
    InvalidRequestError,
    NotAFileError,
    NotFoundError,
    TraversalRejectedError,
)
from filemanager.ownership import OwnershipEnforcer
from filemanager.progress import ProgressRecord, ProgressRegistry, ProgressStatus
from filemanager.sandbox import PathSandbox, is_within
from filemanager.utils import copy_stream, generate_uuid, unique_path

logger = get_logger(__name__)

_ARCHIVE_ERRORS = (FileManagerError, OSError, RuntimeError, zipfile.BadZipFile, zlib.error)

# earliest timestamp a zip header can hold
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def clamp_compression_level(level) -> int:
    """Negative or missing levels mean the default; the rest is clamped to 0-9."""
    if level is None or level < 0:
        return DEFAULT_COMPRESSION_LEVEL
    return min(max(level, MIN_COMPRESSION_LEVEL), MAX_COMPRESSION_LEVEL)


def entry_header(item: FileStat, arcname: str, archive: zipfile.ZipFile) -> zipfile.ZipInfo:
    """
    Zip header carrying the modification time and permission bits of ``item``.

    Times before 1980 cannot be stored and are raised to the zip epoch.
    Directory entries are always stored uncompressed.
    """
    date_time = max(tuple(time.localtime(item.modified)[:6]), _ZIP_EPOCH)
    if item.is_dir:
        info = zipfile.ZipInfo(f"{arcname}/", date_time=date_time)
        # 0x10 is the MS-DOS directory attribute
        info.external_attr = ((stat.S_IFDIR | item.mode) << 16) | 0x10
        info.compress_type = zipfile.ZIP_STORED
        return info

    info = zipfile.ZipInfo(arcname, date_time=date_time)
    info.external_attr = (stat.S_IFREG | item.mode) << 16
    info.compress_type = archive.compression
    info._compresslevel = archive.compresslevel
    return info


def validate_entry_names(destination: str, names: Sequence[str]) -> List[Tuple[str, str]]:
    """
    Map archive entry names to targets under ``destination``.

    Every name is checked before the caller writes anything, so one bad
    entry rejects the whole archive.

    Args:
        destination: Absolute extraction directory
        names: Entry names as stored in the archive

    Returns:
        List of (entry name, absolute target path) pairs

    Raises:
        TraversalRejectedError: If any entry would land outside ``destination``
    """
    targets = []
    for name in names:
        if "\x00" in name:
            raise TraversalRejectedError(f"archive entry contains a NUL byte: {name!r}")
        target = posixpath.normpath(posixpath.join(destination, name))
        if name.startswith("/") or not is_within(destination, target):
            raise TraversalRejectedError(f"archive entry escapes the destination: {name!r}")
        targets.append((name, target))
    return targets


class ArchiveService:
    """
    Builds and unpacks zip archives entry by entry, never holding a whole
    file in memory.
    """

    def __init__(
        self,
        backend: StorageBackend,
        sandbox: PathSandbox,
        registry: ProgressRegistry,
        ownership: OwnershipEnforcer,
    ):
        self.backend = backend
        self.sandbox = sandbox
        self.registry = registry
        self.ownership = ownership

    def _progress(self, op_id: str) -> Callable[[int], None]:
        return lambda n: self.registry.update(op_id, n)

    def _collect_inputs(self, paths: Sequence[str]) -> List[FileStat]:
        inputs = []
        for path in paths:
            try:
                inputs.append(self.backend.stat(self.sandbox.resolve(path)))
            except (TraversalRejectedError, NotFoundError) as e:
                logger.debug(f"Skipping archive input {path!r}: {e}")
        return inputs

    def compress(
        self,
        paths: Sequence[str],
        output: str,
        level: int = DEFAULT_COMPRESSION_LEVEL,
    ) -> str:
        """
        Zip the given files and directories into ``output``.

        Files are stored under their base name; a directory becomes a
        ``<base>/`` entry followed by everything below it.

        Args:
            paths: Tenant-relative inputs; unusable ones are skipped
            output: Tenant-relative archive path, deduplicated if taken
            level: Deflate level 0-9, negative means default

        Returns:
            Operation id; failures after start are reported through the record

        Raises:
            TraversalRejectedError: If the output path escapes the tenant root
            NotFoundError: If none of the inputs exists
        """
        output_path = self.sandbox.resolve(output)
        if self.sandbox.is_root(output_path):
            raise InvalidRequestError("output must name a file below the root")

        inputs = self._collect_inputs(paths)
        if not inputs:
            raise NotFoundError("no valid input paths to compress")

        total = sum(self.backend.dir_size(item.path) if item.is_dir else item.size for item in inputs)

        self.backend.mkdir_all(posixpath.dirname(output_path))
        output_path = unique_path(output_path, self.backend.exists)

        op_id = generate_uuid()
        self.registry.create(op_id, ProgressRecord(
            id=op_id,
            filename=posixpath.basename(output_path),
            path=self.sandbox.relative_of(output_path),
            total_bytes=total,
            status=ProgressStatus.PROCESSING,
        ))
        logger.info(f"Compress {op_id} started: {len(inputs)} inputs, {total} bytes -> {output_path}")

        try:
            with self.backend.create(output_path) as handle:
                with zipfile.ZipFile(
                    handle,
                    mode="w",
                    compression=zipfile.ZIP_DEFLATED,
                    compresslevel=clamp_compression_level(level),
                ) as archive:
                    for item in inputs:
                        if item.is_dir:
                            self._add_directory(archive, item, output_path, op_id)
                        else:
                            self._add_file(archive, item, item.name, op_id)
        except _ARCHIVE_ERRORS as e:
            self.registry.mark_failed(op_id, str(e))
            logger.error(f"Compress {op_id} failed: {e}")
            return op_id

        self.ownership.apply(output_path)
        self.registry.mark_completed(op_id)
        logger.info(f"Compress {op_id} completed: {output_path}")
        return op_id

    def _add_file(self, archive: zipfile.ZipFile, item: FileStat, arcname: str, op_id: str) -> None:
        with self.backend.open(item.path) as source:
            header = entry_header(item, arcname, archive)
            with archive.open(header, mode="w", force_zip64=item.size >= zipfile.ZIP64_LIMIT) as entry:
                copy_stream(source, entry, on_progress=self._progress(op_id))

    def _add_directory(self, archive: zipfile.ZipFile, item: FileStat, output_path: str, op_id: str) -> None:
        archive.writestr(entry_header(item, item.name, archive), b"")
        for path, entry in self.backend.walk(item.path):
            if path == output_path:
                continue
            arcname = posixpath.join(item.name, posixpath.relpath(path, item.path))
            if entry.is_dir:
                archive.writestr(entry_header(entry, arcname, archive), b"")
            else:
                self._add_file(archive, entry, arcname, op_id)

    def extract(self, source: str, destination: str) -> str:
        """
        Unpack a zip archive into ``destination``.

        All entry names are validated before the first byte is written.
        Files that already exist are kept and the extracted copy is
        deduplicated next to them.

        Args:
            source: Tenant-relative archive path
            destination: Tenant-relative target directory

        Returns:
            Operation id; failures after start are reported through the record

        Raises:
            TraversalRejectedError: If a path or any entry escapes its root
            NotFoundError: If the archive does not exist
            InvalidRequestError: If the source is not a readable zip archive
        """
        source_path = self.sandbox.resolve(source)
        destination_path = self.sandbox.resolve(destination)

        if not self.backend.exists(source_path):
            raise NotFoundError(f"{source}: not found")
        if self.backend.stat(source_path).is_dir:
            raise NotAFileError(f"{source}: not a file")

        with self.backend.open(source_path) as handle:
            try:
                archive = zipfile.ZipFile(handle)
            except zipfile.BadZipFile as e:
                raise InvalidRequestError(f"{source}: not a zip archive ({e})") from e

            with archive:
                members = archive.infolist()
                targets = validate_entry_names(destination_path, [m.filename for m in members])
                total = sum(m.file_size for m in members if not m.is_dir())

                op_id = generate_uuid()
                self.registry.create(op_id, ProgressRecord(
                    id=op_id,
                    filename=posixpath.basename(source_path),
                    path=self.sandbox.relative_of(destination_path),
                    total_bytes=total,
                    status=ProgressStatus.PROCESSING,
                ))
                logger.info(
                    f"Extract {op_id} started: {source_path} ({len(members)} entries, {total} bytes) "
                    f"-> {destination_path}"
                )

                try:
                    self.backend.mkdir_all(destination_path)
                    for member, (_, target) in zip(members, targets):
                        self._extract_member(archive, member, target, destination_path, op_id)
                except _ARCHIVE_ERRORS as e:
                    self.registry.mark_failed(op_id, str(e))
                    logger.error(f"Extract {op_id} failed: {e}")
                    return op_id

        self.registry.mark_completed(op_id)
        logger.info(f"Extract {op_id} completed into {destination_path}")
        return op_id

    def _extract_member(
        self,
        archive: zipfile.ZipFile,
        member: zipfile.ZipInfo,
        target: str,
        destination_path: str,
        op_id: str,
    ) -> None:
        if member.is_dir():
            if target != destination_path:
                self.backend.mkdir_all(target)
                self.ownership.apply(target)
            return

        self.backend.mkdir_all(posixpath.dirname(target))
        target = unique_path(target, self.backend.exists)
        with archive.open(member) as source, self.backend.create(target) as handle:
            copy_stream(source, handle, on_progress=self._progress(op_id))

        # archives built off Unix carry no permission bits
        mode = (member.external_attr >> 16) & 0o777
        if mode:
            self.backend.chmod(target, mode)
        self.ownership.apply(target)
