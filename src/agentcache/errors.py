"""Exception hierarchy for the agent cache.

Filesystem failures are not wrapped: they surface as the original ``OSError``.
"""

from typing import Optional


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class FetchError(CacheError):
    """Raised when a remote resource cannot be fetched."""

    def __init__(self, message: str, url: str = ""):
        self.url = url
        super().__init__(message)


class UnexpectedStatusError(FetchError):
    """Raised when the remote store answers with a non-success status."""

    def __init__(self, status_code: int, url: str = ""):
        self.status_code = status_code
        super().__init__(f"unexpected response code {status_code} from {url}", url)


class ChecksumMismatchError(CacheError):
    """Raised when a downloaded artifact does not match its published checksum.

    The download itself succeeded, so callers may choose not to retry.
    """

    def __init__(self, url: str, expected: str, actual: Optional[str] = None):
        self.url = url
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"mismatched checksum while downloading {url}: "
            f"expected {expected}, got {actual}"
        )


class DesiredImageError(CacheError):
    """Raised when the desired-image locator file is malformed."""

    pass


class CacheLockError(CacheError):
    """Raised when unable to acquire the download lock."""

    pass
