"""Filesystem backend for cache file operations."""

from agentcache.storage.backend import FileSystem

__all__ = ["FileSystem"]
