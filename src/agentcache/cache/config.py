"""Cache configuration management."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

SUPPORTED_ALGORITHMS = ("md5", "sha256")


@dataclass
class CacheConfig:
    """Configuration for the agent image cache.

    Attributes:
        cache_dir: Directory holding the cached tarball and its marker files
        agent_tarball: Canonical tarball path (defaults to cache_dir/ecs-agent.tar)
        cache_state: State marker path (defaults to cache_dir/state)
        desired_image_locator: Desired-image pointer file (defaults to
            cache_dir/desired-image)
        tarball_name: Object name of the tarball in the remote bucket
        temp_prefix: Prefix of temporary download files inside cache_dir
        default_region: Region used when instance metadata is unavailable
        checksum_algorithm: Algorithm of the published checksum ('md5', 'sha256')
        remote_base_url: Optional format string with a ``{region}`` field that
            replaces the default bucket URL
        fetch_timeout: Timeout in seconds for remote fetches (None = no timeout)
        metadata_timeout: Timeout in seconds for instance metadata lookups
        lock_timeout: Seconds the CLI waits for the download lock
    """

    cache_dir: Path = Path("/var/cache/ecs")
    agent_tarball: Optional[Path] = None
    cache_state: Optional[Path] = None
    desired_image_locator: Optional[Path] = None
    tarball_name: str = "ecs-agent-latest.tar"
    temp_prefix: str = "ecs-agent.tar"
    default_region: str = "us-east-1"
    checksum_algorithm: str = "md5"
    remote_base_url: Optional[str] = None
    fetch_timeout: Optional[float] = 30.0
    metadata_timeout: float = 2.0
    lock_timeout: float = 600.0

    def __post_init__(self):
        """Normalize paths and derive the file layout from cache_dir."""
        self.cache_dir = Path(self.cache_dir).expanduser()

        # Unset file paths are rooted under the cache directory
        if self.agent_tarball is None:
            self.agent_tarball = self.cache_dir / "ecs-agent.tar"
        if self.cache_state is None:
            self.cache_state = self.cache_dir / "state"
        if self.desired_image_locator is None:
            self.desired_image_locator = self.cache_dir / "desired-image"

        self.agent_tarball = Path(self.agent_tarball)
        self.cache_state = Path(self.cache_state)
        self.desired_image_locator = Path(self.desired_image_locator)

        self.checksum_algorithm = self.checksum_algorithm.lower()
        if self.checksum_algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported algorithm: {self.checksum_algorithm}")

    @property
    def lock_path(self) -> Path:
        """Lock file used by callers that serialize downloads."""
        return self.cache_dir / ".download.lock"

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CacheConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses
                /etc/agentcache/config.json.

        Returns:
            CacheConfig instance
        """
        if config_path is None:
            config_path = Path("/etc/agentcache/config.json")

        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        for key in ("cache_dir", "agent_tarball", "cache_state", "desired_image_locator"):
            if data.get(key) is not None:
                data[key] = Path(data[key])

        return cls(**data)

    def save(self, config_path: Path) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file
        """
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "cache_dir": str(self.cache_dir),
            "agent_tarball": str(self.agent_tarball),
            "cache_state": str(self.cache_state),
            "desired_image_locator": str(self.desired_image_locator),
            "tarball_name": self.tarball_name,
            "temp_prefix": self.temp_prefix,
            "default_region": self.default_region,
            "checksum_algorithm": self.checksum_algorithm,
            "remote_base_url": self.remote_base_url,
            "fetch_timeout": self.fetch_timeout,
            "metadata_timeout": self.metadata_timeout,
            "lock_timeout": self.lock_timeout,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            AGENTCACHE_DIR: Cache directory path
            AGENTCACHE_DESIRED_IMAGE: Desired-image locator file path
            AGENTCACHE_DEFAULT_REGION: Fallback region
            AGENTCACHE_CHECKSUM_ALGORITHM: 'md5' or 'sha256'
            AGENTCACHE_REMOTE_BASE_URL: Bucket URL format string with {region}
            AGENTCACHE_FETCH_TIMEOUT: Remote fetch timeout in seconds

        Returns:
            CacheConfig instance
        """
        kwargs = {}

        if os.getenv("AGENTCACHE_DIR"):
            kwargs["cache_dir"] = Path(os.getenv("AGENTCACHE_DIR"))

        if os.getenv("AGENTCACHE_DESIRED_IMAGE"):
            kwargs["desired_image_locator"] = Path(os.getenv("AGENTCACHE_DESIRED_IMAGE"))

        if os.getenv("AGENTCACHE_DEFAULT_REGION"):
            kwargs["default_region"] = os.getenv("AGENTCACHE_DEFAULT_REGION")

        if os.getenv("AGENTCACHE_CHECKSUM_ALGORITHM"):
            kwargs["checksum_algorithm"] = os.getenv("AGENTCACHE_CHECKSUM_ALGORITHM")

        if os.getenv("AGENTCACHE_REMOTE_BASE_URL"):
            kwargs["remote_base_url"] = os.getenv("AGENTCACHE_REMOTE_BASE_URL")

        if os.getenv("AGENTCACHE_FETCH_TIMEOUT"):
            kwargs["fetch_timeout"] = float(os.getenv("AGENTCACHE_FETCH_TIMEOUT"))

        return cls(**kwargs)


# Global cache configuration instance
_global_config: Optional[CacheConfig] = None


def get_global_config() -> CacheConfig:
    """Get global cache configuration.

    Returns:
        Global CacheConfig instance
    """
    global _global_config
    if _global_config is None:
        if os.getenv("AGENTCACHE_CONFIG"):
            _global_config = CacheConfig.load(Path(os.getenv("AGENTCACHE_CONFIG")))
        else:
            _global_config = CacheConfig.from_env()
    return _global_config


def set_global_config(config: Optional[CacheConfig]) -> None:
    """Set global cache configuration.

    Args:
        config: CacheConfig instance to use globally, or None to reset
    """
    global _global_config
    _global_config = config
