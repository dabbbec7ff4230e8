"""Cache manager for the locally cached agent image tarball."""

import logging
import os
from typing import Any, BinaryIO, Dict, List, Optional

from agentcache.cache.config import CacheConfig
from agentcache.cache.validation import new_hasher, normalize_checksum
from agentcache.errors import (
    ChecksumMismatchError,
    DesiredImageError,
    UnexpectedStatusError,
)
from agentcache.remote.fetch import Fetcher, FetchResponse, HTTPFetcher
from agentcache.remote.metadata import InstanceMetadataClient, RegionProvider
from agentcache.storage.backend import FileSystem

logger = logging.getLogger(__name__)

ORW_PERM = 0o700
CACHED_MARKER = b"1"


class CacheManager:
    """Downloads, verifies and serves the cached agent image.

    The cache is written only through an atomic rename of a fully verified
    temporary file, so readers of the canonical tarball never see a partial
    download. No locking is done here; callers serialize downloads.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        fetcher: Optional[Fetcher] = None,
        metadata: Optional[RegionProvider] = None,
        fs: Optional[FileSystem] = None,
        region: Optional[str] = None,
    ):
        """Initialize cache manager.

        Args:
            config: Cache configuration (defaults if None)
            fetcher: Remote fetch capability (HTTPFetcher if None)
            metadata: Region lookup capability. If None and no region is
                given, the configured default region is used without lookup.
            fs: Filesystem capability
            region: Preset region that skips metadata lookup
        """
        self.config = config or CacheConfig()
        self.fetcher = fetcher or HTTPFetcher(timeout=self.config.fetch_timeout)
        self.metadata = metadata
        self.fs = fs or FileSystem()
        self._region = region

        if not self._region and self.metadata is None:
            self._region = self.config.default_region

    @classmethod
    def from_config(cls, config: CacheConfig) -> "CacheManager":
        """Build a manager with the default HTTP and metadata clients."""
        return cls(
            config=config,
            fetcher=HTTPFetcher(timeout=config.fetch_timeout),
            metadata=InstanceMetadataClient(timeout=config.metadata_timeout),
        )

    # =========================================================================
    # Region and remote locations
    # =========================================================================

    def get_region(self) -> str:
        """Return the deployment region, resolving it at most once.

        Falls back to the configured default region if the lookup fails.
        """
        if self._region:
            return self._region

        try:
            region = self.metadata.region()
        except Exception as e:
            logger.warning(
                f"Could not retrieve the region from instance metadata. Error: {e}"
            )
            region = self.config.default_region

        self._region = region
        return self._region

    def agent_remote_tarball(self) -> str:
        """URL of the published agent tarball for the resolved region."""
        region = self.get_region()
        if self.config.remote_base_url:
            base = self.config.remote_base_url.format(region=region)
        else:
            domain = "amazonaws.com.cn" if region.startswith("cn-") else "amazonaws.com"
            base = f"https://s3.{region}.{domain}/amazon-ecs-agent-{region}"
        return f"{base.rstrip('/')}/{self.config.tarball_name}"

    def agent_remote_checksum(self) -> str:
        """URL of the checksum published alongside the agent tarball."""
        return f"{self.agent_remote_tarball()}.{self.config.checksum_algorithm}"

    # =========================================================================
    # Cache state
    # =========================================================================

    def _file_not_empty(self, path) -> bool:
        try:
            return self.fs.stat_size(path) > 0
        except OSError:
            return False

    def is_agent_cached(self) -> bool:
        """Check whether a cached agent is present.

        True only if both the state marker and the tarball are non-empty. The
        tarball contents are not validated here; validation happens before a
        download is promoted into place.
        """
        return self._file_not_empty(self.config.cache_state) and self._file_not_empty(
            self.config.agent_tarball
        )

    def record_cached_agent(self) -> None:
        """Mark the cached agent as usable by writing the state marker."""
        self.fs.write_file(self.config.cache_state, CACHED_MARKER, ORW_PERM)

    def get_status(self) -> Dict[str, Any]:
        """Get cache status.

        Returns:
            Status dict with per-file presence and sizes
        """
        files = {}
        for label, path in (
            ("agent_tarball", self.config.agent_tarball),
            ("cache_state", self.config.cache_state),
            ("desired_image_locator", self.config.desired_image_locator),
        ):
            try:
                size = self.fs.stat_size(path)
            except OSError:
                size = None
            files[label] = {"path": str(path), "exists": size is not None, "size_bytes": size}

        return {
            "cache_dir": str(self.config.cache_dir),
            "cached": self.is_agent_cached(),
            "files": files,
        }

    # =========================================================================
    # Download
    # =========================================================================

    def download_agent(self) -> None:
        """Download a fresh copy of the agent and verify its checksum.

        The tarball is streamed into a temporary file in the cache directory
        while being hashed, and renamed onto the canonical path only if the
        digest matches the published checksum.

        Raises:
            FetchError: If the checksum or tarball cannot be fetched
            UnexpectedStatusError: On a non-success response status
            ChecksumMismatchError: If the download does not match its checksum
            OSError: On filesystem failures, including the final rename
        """
        self.fs.makedirs(self.config.cache_dir, ORW_PERM)

        published_checksum = self._get_published_checksum()

        response = self._get_published_tarball()
        temp_path = None
        try:
            with response:
                temp_path = self._download_to_temp(response, published_checksum)
        except BaseException:
            # Closing the body can still fail after a verified write
            if temp_path is not None:
                self._remove_temp_file(temp_path)
            raise

        logger.debug(f"Attempting to rename {temp_path} to {self.config.agent_tarball}")
        self.fs.rename(temp_path, self.config.agent_tarball)

    def _download_to_temp(self, response: FetchResponse, published_checksum: str) -> str:
        """Stream a response into a verified temp file and return its path."""
        hasher = new_hasher(self.config.checksum_algorithm)
        temp_file = self.fs.temp_file(self.config.cache_dir, self.config.temp_prefix)
        temp_path = temp_file.name
        logger.debug(f"Temp file {temp_path}")

        try:
            with temp_file:
                self.fs.tee_copy(temp_file, response.body, hasher)

            calculated_checksum = hasher.hexdigest()
            logger.debug(f"Expected {published_checksum}")
            logger.debug(f"Calculated {calculated_checksum}")
            if published_checksum != calculated_checksum:
                raise ChecksumMismatchError(
                    response.url, published_checksum, calculated_checksum
                )
        except BaseException:
            self._remove_temp_file(temp_path)
            raise

        return temp_path

    def _remove_temp_file(self, temp_path: str) -> None:
        logger.debug(f"Removing temp file {temp_path}")
        try:
            self.fs.remove(temp_path)
        except OSError as e:
            logger.warning(f"Failed to clean up temp file {temp_path}: {e}")

    def _get_published_checksum(self) -> str:
        url = self.agent_remote_checksum()
        logger.debug(f"Downloading published checksum from {url}")
        with self.fetcher.get(url) as response:
            if not response.ok:
                raise UnexpectedStatusError(response.status_code, url)
            body = self.fs.read_all(response.body)
        return normalize_checksum(body.decode("utf-8", errors="replace"))

    def _get_published_tarball(self) -> FetchResponse:
        url = self.agent_remote_tarball()
        logger.debug(f"Downloading agent tarball from {url}")
        response = self.fetcher.get(url)
        if not response.ok:
            response.close()
            raise UnexpectedStatusError(response.status_code, url)
        return response

    def clean_temp_files(self) -> List[str]:
        """Remove temp files left behind by interrupted downloads.

        Must not run concurrently with a download.

        Returns:
            Paths that were removed
        """
        canonical = self.fs.base(str(self.config.agent_tarball))
        removed = []
        for name in self.fs.list_dir(self.config.cache_dir):
            if not name.startswith(self.config.temp_prefix) or name == canonical:
                continue
            path = str(self.config.cache_dir / name)
            try:
                self.fs.remove(path)
            except OSError as e:
                logger.warning(f"Failed to remove stale temp file {path}: {e}")
                continue
            logger.debug(f"Removed stale temp file {path}")
            removed.append(path)
        return removed

    # =========================================================================
    # Loading
    # =========================================================================

    def load_cached_agent(self) -> BinaryIO:
        """Open the cached agent tarball for reading."""
        return self.fs.open(self.config.agent_tarball)

    def load_desired_agent(self) -> BinaryIO:
        """Open the tarball named by the desired-image locator file."""
        return self.fs.open(self.resolve_desired_image_path())

    def resolve_desired_image_path(self) -> str:
        """Resolve the desired-image locator to a path in the cache directory.

        The locator's first line, terminated by a newline, names the desired
        tarball. It is interpreted as a base name; any directory part is
        dropped. The rest of the file is reserved.

        Raises:
            OSError: If the locator file cannot be opened
            DesiredImageError: If the first line has no terminating newline
        """
        with self.fs.open(self.config.desired_image_locator) as f:
            line = f.readline()

        if not line.endswith(b"\n"):
            raise DesiredImageError(
                f"desired image locator {self.config.desired_image_locator} "
                "does not contain a newline-terminated file name"
            )

        # File names are raw bytes; undecodable ones round-trip through surrogates
        name = self.fs.base(os.fsdecode(line).strip())
        return f"{self.config.cache_dir}/{name}"
