"""Remote filesystem backend over an SSH session and its SFTP channel."""

from __future__ import annotations

import io
import posixpath
import shlex
import socket
import stat
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple

import paramiko

from common.constants import COPY_BUFFER_SIZE
from common.logging_config import get_logger
from common.types import FileStat, RemoteDescriptor
from filemanager import config
from filemanager.backends.errors import os_errors
from filemanager.exceptions import (
    FolderNotEmptyError,
    IOFailureError,
    NotAFileError,
    NotAFolderError,
    RemoteConnectionFailedError,
)
from filemanager.utils import copy_stream, sort_entries

logger = get_logger(__name__)

_KEY_TYPES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


def load_private_key(material: str) -> paramiko.PKey:
    """
    Parse PEM or OpenSSH private key text.

    Args:
        material: Private key as sent by the caller

    Returns:
        paramiko key object

    Raises:
        RemoteConnectionFailedError: If no supported key type accepts it
    """
    for key_type in _KEY_TYPES:
        try:
            return key_type.from_private_key(io.StringIO(material))
        except (paramiko.SSHException, ValueError):
            continue
    raise RemoteConnectionFailedError("SSH connection failed: failed to parse private key")


def _to_file_stat(path: str, attrs: paramiko.SFTPAttributes) -> FileStat:
    mode = attrs.st_mode or 0
    return FileStat(
        name=posixpath.basename(path) or path,
        path=path,
        size=attrs.st_size or 0,
        is_dir=stat.S_ISDIR(mode),
        mode=stat.S_IMODE(mode),
        modified=float(attrs.st_mtime or 0),
    )


class RemoteBackend:
    """
    Filesystem operations carried out on an SSH host through SFTP.

    The backend owns one SSH connection and one SFTP sub-session; it is not
    safe to share between concurrent operations. Close it (or use it as a
    context manager) when the request that opened it is done.
    """

    is_remote = True

    def __init__(
        self,
        descriptor: RemoteDescriptor,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
        connect_timeout: Optional[float] = None,
    ):
        self.descriptor = descriptor
        self._ssh: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None
        self._connect(client_factory, connect_timeout or config.SSH_CONNECT_TIMEOUT)

    def _connect(self, client_factory: Callable[[], paramiko.SSHClient], timeout: float) -> None:
        pkey = load_private_key(self.descriptor.private_key)

        client = client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=self.descriptor.host,
                port=int(self.descriptor.port),
                username=self.descriptor.username,
                pkey=pkey,
                timeout=timeout,
                look_for_keys=False,
                allow_agent=False,
            )
            sftp = client.open_sftp()
        except (paramiko.SSHException, socket.error, EOFError) as e:
            client.close()
            logger.warning(
                f"SSH connection to {self.descriptor.username}@{self.descriptor.host}:{self.descriptor.port} failed: {e}"
            )
            raise RemoteConnectionFailedError(f"SSH connection failed: {e}") from e

        self._ssh = client
        self._sftp = sftp
        logger.info(f"Opened SFTP session to {self.descriptor.host}:{self.descriptor.port}")

    def __enter__(self) -> "RemoteBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def sftp(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise RemoteConnectionFailedError("SFTP session is closed")
        return self._sftp

    def stat(self, path: str) -> FileStat:
        with os_errors(path):
            return _to_file_stat(path, self.sftp.stat(path))

    def exists(self, path: str) -> bool:
        try:
            self.sftp.lstat(path)
            return True
        except FileNotFoundError:
            return False
        except IOError as e:
            raise IOFailureError(f"{path}: {e}") from e

    def list(self, path: str) -> List[FileStat]:
        if not self.stat(path).is_dir:
            raise NotAFolderError(f"{path}: not a folder")

        with os_errors(path):
            attrs = self.sftp.listdir_attr(path)
        return sort_entries(
            _to_file_stat(posixpath.join(path, entry.filename), entry) for entry in attrs
        )

    def open(self, path: str) -> BinaryIO:
        if self.stat(path).is_dir:
            raise NotAFileError(f"{path}: not a file")
        with os_errors(path):
            return self.sftp.open(path, "rb")

    def create(self, path: str) -> BinaryIO:
        with os_errors(path):
            handle = self.sftp.open(path, "wb")
        handle.set_pipelined(True)
        return handle

    def mkdir_all(self, path: str) -> None:
        """Create ``path`` and any missing parents, one component at a time."""
        current = "/"
        for part in [p for p in posixpath.normpath(path).split("/") if p]:
            current = posixpath.join(current, part)
            try:
                details = self.sftp.stat(current)
            except FileNotFoundError:
                with os_errors(current):
                    try:
                        self.sftp.mkdir(current)
                    except IOError:
                        # created concurrently by another request
                        if not stat.S_ISDIR(self.sftp.stat(current).st_mode or 0):
                            raise
                continue
            except IOError as e:
                raise IOFailureError(f"{current}: {e}") from e
            if not stat.S_ISDIR(details.st_mode or 0):
                raise NotAFolderError(f"{current}: not a folder")

    def rename(self, src: str, dst: str) -> None:
        try:
            self.sftp.rename(src, dst)
            return
        except IOError as e:
            logger.info(f"SFTP rename {src} -> {dst} failed ({e}), falling back to copy and delete")

        if self.stat(src).is_dir:
            self.copy_tree(src, dst)
        else:
            self.copy_file(src, dst)
        self.remove_recursive(src)

    def remove(self, path: str) -> None:
        info = self.stat(path)
        with os_errors(path):
            if info.is_dir:
                if self.sftp.listdir(path):
                    raise FolderNotEmptyError(f"{path}: folder is not empty")
                self.sftp.rmdir(path)
            else:
                self.sftp.remove(path)

    def remove_recursive(self, path: str) -> None:
        """Depth-first delete: children go before their directory."""
        with os_errors(path):
            attrs = self.sftp.lstat(path)
        if not stat.S_ISDIR(attrs.st_mode or 0):
            with os_errors(path):
                self.sftp.remove(path)
            return

        with os_errors(path):
            children = self.sftp.listdir_attr(path)
        for child in children:
            self.remove_recursive(posixpath.join(path, child.filename))
        with os_errors(path):
            self.sftp.rmdir(path)

    def copy_file(self, src: str, dst: str) -> None:
        self.mkdir_all(posixpath.dirname(dst))
        with self.open(src) as source, self.create(dst) as destination:
            with os_errors(src):
                copy_stream(source, destination, buffer_size=COPY_BUFFER_SIZE)

    def copy_tree(self, src: str, dst: str) -> None:
        self.mkdir_all(dst)
        for entry in self.list(src):
            target = posixpath.join(dst, entry.name)
            if entry.is_dir:
                self.copy_tree(entry.path, target)
            else:
                self.copy_file(entry.path, target)

    def walk(self, path: str) -> Iterator[Tuple[str, FileStat]]:
        """Pre-order depth-first walk below ``path`` (``path`` itself excluded)."""
        for entry in self.list(path):
            yield entry.path, entry
            if entry.is_dir:
                yield from self.walk(entry.path)

    def run_command(self, command: str) -> Tuple[int, str]:
        """
        Execute a shell command on the remote host.

        Returns:
            Tuple of (exit status, combined stdout and stderr)
        """
        if self._ssh is None:
            raise RemoteConnectionFailedError("SSH session is closed")
        try:
            _stdin, stdout, stderr = self._ssh.exec_command(command)
            output = stdout.read().decode("utf-8", errors="replace")
            output += stderr.read().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, socket.error) as e:
            raise IOFailureError(f"SSH command failed: {e}") from e
        return exit_status, output

    def dir_size(self, path: str) -> int:
        """
        Total size of the files below ``path``.

        A single ``du`` round trip is preferred; a stat walk is the fallback
        when the command is unavailable or prints something unexpected.
        """
        info = self.stat(path)
        if not info.is_dir:
            return info.size

        exit_status, output = self.run_command(f"du -sb -- {shlex.quote(path)}")
        fields = output.split()
        if exit_status == 0 and fields and fields[0].isdigit():
            return int(fields[0])

        logger.warning(f"Remote du failed for {path} (exit {exit_status}), walking the tree instead")
        return sum(entry.size for _, entry in self.walk(path) if not entry.is_dir)

    def chmod(self, path: str, mode: int) -> None:
        with os_errors(path):
            self.sftp.chmod(path, mode)

    def chown(self, path: str, owner: str, recursive: bool = False) -> None:
        flag = "-R " if recursive else ""
        spec = shlex.quote(f"{owner}:{owner}")
        exit_status, output = self.run_command(f"chown {flag}{spec} -- {shlex.quote(path)}")
        if exit_status != 0:
            raise IOFailureError(f"SSH chown failed for {path}: exit {exit_status}, output: {output.strip()}")

    def close(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._ssh is not None:
            self._ssh.close()
            self._ssh = None
