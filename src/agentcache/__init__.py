"""agentcache: verified local disk cache for the agent image tarball."""

__version__ = "0.1.0"

from agentcache.cache import CacheConfig, CacheManager
from agentcache.errors import (
    CacheError,
    CacheLockError,
    ChecksumMismatchError,
    DesiredImageError,
    FetchError,
    UnexpectedStatusError,
)

__all__ = [
    "CacheManager",
    "CacheConfig",
    "CacheError",
    "CacheLockError",
    "ChecksumMismatchError",
    "DesiredImageError",
    "FetchError",
    "UnexpectedStatusError",
    "__version__",
]
