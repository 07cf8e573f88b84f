"""Utility helper functions for the file manager."""

import mimetypes
import posixpath
import stat
import uuid
from typing import BinaryIO, Callable, Iterable, List, Optional

from common.constants import COPY_BUFFER_SIZE, DEFAULT_UPLOAD_FILENAME
from common.types import FileStat


def generate_uuid() -> str:
    """
    Generate a new UUID4 string.

    Returns:
        UUID4 string
    """
    return str(uuid.uuid4())


def unique_path(path: str, exists: Callable[[str], bool]) -> str:
    """
    Return ``path`` or the first free sibling ``name_N.ext``.

    Args:
        path: Desired absolute path
        exists: Predicate telling whether a path is already taken

    Returns:
        A path for which ``exists`` is False
    """
    if not exists(path):
        return path

    directory, base = posixpath.split(path)
    name, ext = posixpath.splitext(base)

    counter = 1
    while True:
        candidate = posixpath.join(directory, f"{name}_{counter}{ext}")
        if not exists(candidate):
            return candidate
        counter += 1


def safe_filename(filename: Optional[str]) -> str:
    """
    Reduce a client-supplied filename to a bare base name.

    Args:
        filename: Name as sent by the client, possibly with directories

    Returns:
        Base name, or the default upload name when nothing usable remains
    """
    if not filename:
        return DEFAULT_UPLOAD_FILENAME
    base = posixpath.basename(filename.replace("\\", "/")).strip()
    if base in ("", ".", "..") or "\x00" in base:
        return DEFAULT_UPLOAD_FILENAME
    return base


def sort_entries(entries: Iterable[FileStat]) -> List[FileStat]:
    """Directories first, then case-insensitive name order."""
    return sorted(entries, key=lambda entry: (not entry.is_dir, entry.name.lower()))


def copy_stream(
    source: BinaryIO,
    destination: BinaryIO,
    on_progress: Optional[Callable[[int], None]] = None,
    buffer_size: int = COPY_BUFFER_SIZE,
) -> int:
    """
    Copy ``source`` into ``destination`` one buffer at a time.

    Args:
        source: Readable binary stream
        destination: Writable binary stream
        on_progress: Called with the byte count of every flushed buffer
        buffer_size: Size of the copy buffer

    Returns:
        Total number of bytes copied
    """
    copied = 0
    while True:
        piece = source.read(buffer_size)
        if not piece:
            break
        destination.write(piece)
        copied += len(piece)
        if on_progress is not None:
            on_progress(len(piece))
    return copied


def get_mime_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or "application/octet-stream"


def get_extension(name: str) -> str:
    return posixpath.splitext(name)[1].lstrip(".")


def format_permissions(mode: int) -> str:
    """Render permission bits as ``rwxr-xr-x``."""
    return stat.filemode(mode)[1:]


def format_file_size(size: int) -> str:
    """
    Format a byte count for humans (``1.5 MB``).

    Args:
        size: Size in bytes

    Returns:
        Human readable size string
    """
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}B"
