"""Local disk cache for the agent image tarball.

This module downloads the published tarball, verifies it against its
published checksum, and serves it from disk without network access.

Key components:
- CacheManager: Main cache interface
- CacheConfig: Configuration management
- HashingWriter: Digest tee used while streaming downloads
"""

from agentcache.cache.config import CacheConfig
from agentcache.cache.manager import CacheManager
from agentcache.cache.validation import HashingWriter

__all__ = [
    "CacheManager",
    "CacheConfig",
    "HashingWriter",
]
