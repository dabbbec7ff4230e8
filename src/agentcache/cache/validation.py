"""Checksum utilities for verifying downloaded artifacts."""

import hashlib
from typing import BinaryIO

from agentcache.cache.config import SUPPORTED_ALGORITHMS


def new_hasher(algorithm: str = "md5"):
    """Create a fresh digest accumulator.

    Args:
        algorithm: Hash algorithm ('md5', 'sha256')

    Returns:
        hashlib hash object

    Raises:
        ValueError: If algorithm not supported
    """
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    if algorithm == "md5":
        return hashlib.md5()
    return hashlib.sha256()


def normalize_checksum(published: str) -> str:
    """Normalize a published checksum for comparison with a hex digest.

    Surrounding whitespace is dropped and hex digits are lowercased, so
    ``"5D41...\\n"`` compares equal to ``hexdigest()`` output.
    """
    return published.strip().lower()


class HashingWriter:
    """Writable stream that feeds every chunk to a digest before writing it.

    Wrapping the destination rather than the source keeps the digest and the
    file in step: both see exactly the bytes handed to ``write``.

    Examples:
        >>> hasher = new_hasher("md5")
        >>> with open(path, "wb") as f:
        ...     shutil.copyfileobj(source, HashingWriter(f, hasher))
        >>> hasher.hexdigest()
    """

    def __init__(self, dest: BinaryIO, hasher):
        self.dest = dest
        self.hasher = hasher
        self.bytes_written = 0

    def write(self, chunk: bytes) -> int:
        self.hasher.update(chunk)
        written = self.dest.write(chunk)
        self.bytes_written += len(chunk)
        return written if written is not None else len(chunk)

    def flush(self) -> None:
        self.dest.flush()
