"""Filesystem backend for cache file operations.

This module provides the narrow set of filesystem operations the cache
manager relies on. Tests substitute subclasses to inject faults.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Union

from agentcache.cache.validation import HashingWriter

PathLike = Union[str, Path]

COPY_CHUNK_SIZE = 64 * 1024


class FileSystem:
    """Handles all local file I/O for the agent cache.

    Provides:
    - Metadata operations (stat_size, base)
    - Directory and temp file creation
    - Streaming copy with digest tee
    - Atomic rename, removal, and whole-file writes

    Examples:
        >>> fs = FileSystem()
        >>> fs.makedirs('/var/cache/ecs', 0o700)
        >>> fs.write_file('/var/cache/ecs/state', b'1', 0o700)
    """

    def stat_size(self, path: PathLike) -> int:
        """Return the size of a file in bytes.

        Raises:
            OSError: If the file does not exist or cannot be stat'ed
        """
        return os.stat(path).st_size

    def makedirs(self, path: PathLike, mode: int = 0o700) -> None:
        """Create a directory and any missing parents (idempotent).

        Args:
            path: Directory path to create
            mode: Permission bits for newly created directories
        """
        Path(path).mkdir(mode=mode, parents=True, exist_ok=True)

    def temp_file(self, directory: PathLike, prefix: str) -> BinaryIO:
        """Create a fresh temporary file inside a directory.

        The file is not deleted on close; the caller either renames or removes
        it. The generated path is available as ``handle.name``.

        Args:
            directory: Directory to create the file in
            prefix: Recognizable file name prefix

        Returns:
            Open binary file handle
        """
        return tempfile.NamedTemporaryFile(
            mode="wb", dir=str(directory), prefix=prefix, delete=False
        )

    def tee_copy(self, dest: BinaryIO, source: BinaryIO, hasher) -> int:
        """Copy all bytes from source to dest while feeding them to a digest.

        Args:
            dest: Writable binary stream
            source: Readable binary stream
            hasher: hashlib-style object with ``update``

        Returns:
            Number of bytes copied
        """
        writer = HashingWriter(dest, hasher)
        shutil.copyfileobj(source, writer, COPY_CHUNK_SIZE)
        writer.flush()
        return writer.bytes_written

    def rename(self, src: PathLike, dst: PathLike) -> None:
        """Atomically replace dst with src (same filesystem)."""
        os.replace(src, dst)

    def remove(self, path: PathLike) -> None:
        """Delete a file."""
        os.remove(path)

    def write_file(self, path: PathLike, data: bytes, mode: int = 0o700) -> None:
        """Write data to a file, truncating existing content.

        Newly created files get ``mode`` (subject to umask).
        """
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        with os.fdopen(fd, "wb") as f:
            f.write(data)

    def open(self, path: PathLike) -> BinaryIO:
        """Open a file for binary reading."""
        return open(path, "rb")

    def read_all(self, stream: BinaryIO) -> bytes:
        """Read a stream to its end."""
        return stream.read()

    def base(self, path: str) -> str:
        """Return the last element of a slash-separated path.

        Trailing slashes are ignored, so ``"a/b/"`` gives ``"b"``; an empty
        path gives ``"."``.
        """
        stripped = path.rstrip("/")
        if not stripped:
            return "/" if path else "."
        return stripped.rsplit("/", 1)[-1]

    def list_dir(self, path: PathLike) -> list:
        """List entry names in a directory (empty if it does not exist)."""
        try:
            return sorted(os.listdir(path))
        except FileNotFoundError:
            return []

