"""Confines caller-supplied relative paths to a tenant root.

Every filesystem touch goes through :class:`PathSandbox` first. Paths are
handled as POSIX strings so the same rules apply to the local disk and to a
remote SFTP host. Containment is decided on path components, never on string
prefixes, so ``/home/alice-2`` is not considered to be under ``/home/alice``.
"""

import posixpath
from typing import List

from filemanager.exceptions import TraversalRejectedError


def _components(path: str) -> List[str]:
    return [part for part in path.split("/") if part]


def normalize_relative(relative: str) -> str:
    """
    Validate and normalize a relative path.

    Args:
        relative: Path as supplied by the caller

    Returns:
        Normalized relative path, ``.`` for the root itself

    Raises:
        TraversalRejectedError: On absolute paths, ``..`` segments or NUL bytes
    """
    if relative is None:
        relative = ""
    if "\x00" in relative:
        raise TraversalRejectedError("path contains a NUL byte")
    if relative.startswith("/"):
        raise TraversalRejectedError(f"absolute paths are not allowed: {relative!r}")

    parts = []
    for part in _components(relative):
        if part == ".":
            continue
        if part == "..":
            raise TraversalRejectedError(f"parent directory references are not allowed: {relative!r}")
        parts.append(part)

    return "/".join(parts) if parts else "."


def is_within(root: str, path: str) -> bool:
    """
    Component-wise check that ``path`` is ``root`` or one of its descendants.

    Both arguments are normalized first; neither is resolved against the
    process working directory.
    """
    root_parts = _components(posixpath.normpath(root))
    path_parts = _components(posixpath.normpath(path))
    if len(path_parts) < len(root_parts):
        return False
    return path_parts[:len(root_parts)] == root_parts


def resolve_path(root: str, relative: str) -> str:
    """Two-argument form of :meth:`PathSandbox.resolve`."""
    return PathSandbox(root).resolve(relative)


def relative_path_of(root: str, absolute: str) -> str:
    """Two-argument form of :meth:`PathSandbox.relative_of`."""
    return PathSandbox(root).relative_of(absolute)


class PathSandbox:
    """
    Resolves relative paths beneath a fixed absolute root.
    """

    def __init__(self, root: str):
        if not root or not root.startswith("/"):
            raise ValueError(f"sandbox root must be an absolute path, got {root!r}")
        self._root = posixpath.normpath(root)

    @property
    def root(self) -> str:
        return self._root

    def resolve(self, relative: str) -> str:
        """
        Resolve a caller path to an absolute path under the root.

        Args:
            relative: Relative path; empty or ``.`` means the root

        Returns:
            Absolute path that is the root or a descendant of it

        Raises:
            TraversalRejectedError: If the path would escape the root
        """
        normalized = normalize_relative(relative)
        if normalized == ".":
            return self._root

        resolved = posixpath.normpath(posixpath.join(self._root, normalized))
        if not is_within(self._root, resolved):
            raise TraversalRejectedError(f"path escapes sandbox root: {relative!r}")
        return resolved

    def relative_of(self, absolute: str) -> str:
        """
        Map an absolute path back to its root-relative form.

        Args:
            absolute: Absolute path previously produced by :meth:`resolve`

        Returns:
            Relative path, ``.`` for the root itself

        Raises:
            TraversalRejectedError: If the path is not under the root
        """
        normalized = posixpath.normpath(absolute)
        if not normalized.startswith("/") or not is_within(self._root, normalized):
            raise TraversalRejectedError(f"path is outside sandbox root: {absolute!r}")

        parts = _components(normalized)[len(_components(self._root)):]
        return "/".join(parts) if parts else "."

    def contains(self, absolute: str) -> bool:
        return absolute.startswith("/") and is_within(self._root, absolute)

    def is_root(self, absolute: str) -> bool:
        return posixpath.normpath(absolute) == self._root
