"""Tests for the agentcache CLI."""

import hashlib
import io
import json
import os

from pathlib import Path

import pytest
from click.testing import CliRunner

from agentcache.cache.config import CacheConfig
from agentcache.cache.manager import CacheManager
from agentcache.cli.main import cli, load_config
from agentcache.errors import FetchError
from agentcache.remote.fetch import FetchResponse

TARBALL_URL = (
    "https://s3.us-east-1.amazonaws.com/amazon-ecs-agent-us-east-1/ecs-agent-latest.tar"
)


class StaticFetcher:
    """Serves a fixed tarball and checksum."""

    def __init__(self, data: bytes, checksum=None):
        self.resources = {
            TARBALL_URL: data,
            TARBALL_URL + ".md5": (checksum or hashlib.md5(data).hexdigest()).encode(),
        }

    def get(self, url):
        if url not in self.resources:
            raise FetchError(f"error fetching {url}", url)
        return FetchResponse(url=url, status_code=200, body=io.BytesIO(self.resources[url]))


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"


def invoke(cache_dir, manager, *args):
    runner = CliRunner()
    return runner.invoke(
        cli, ["--cache-dir", str(cache_dir), *args], obj={"manager": manager}
    )


def make_manager(cache_dir, data=b"hello-agent", checksum=None):
    return CacheManager(
        config=CacheConfig(cache_dir=cache_dir),
        fetcher=StaticFetcher(data, checksum),
        region="us-east-1",
    )


class TestDownloadCommand:
    """Test the download command."""

    def test_download_and_record(self, cache_dir):
        manager = make_manager(cache_dir)

        result = invoke(cache_dir, manager, "download")

        assert result.exit_code == 0
        assert "Downloaded" in result.output
        assert (cache_dir / "ecs-agent.tar").read_bytes() == b"hello-agent"
        assert (cache_dir / "state").read_bytes() == b"1"
        assert manager.is_agent_cached()

    def test_download_no_record(self, cache_dir):
        manager = make_manager(cache_dir)

        result = invoke(cache_dir, manager, "download", "--no-record")

        assert result.exit_code == 0
        assert (cache_dir / "ecs-agent.tar").exists()
        assert not (cache_dir / "state").exists()

    def test_download_mismatch(self, cache_dir):
        manager = make_manager(cache_dir, checksum="0" * 32)

        result = invoke(cache_dir, manager, "download")

        assert result.exit_code == 2
        assert "Integrity check failed" in result.output
        assert not (cache_dir / "ecs-agent.tar").exists()
        assert not (cache_dir / "state").exists()

    def test_download_fetch_error(self, cache_dir):
        manager = make_manager(cache_dir)
        manager.fetcher.resources.clear()

        result = invoke(cache_dir, manager, "download")

        assert result.exit_code == 1
        assert "Error" in result.output


class TestStatusCommand:
    """Test the status command."""

    def test_status_not_cached(self, cache_dir):
        result = invoke(cache_dir, make_manager(cache_dir), "status")

        assert result.exit_code == 0
        assert "not cached" in result.output

    def test_status_cached(self, cache_dir):
        cache_dir.mkdir()
        (cache_dir / "ecs-agent.tar").write_bytes(b"agent")
        (cache_dir / "state").write_bytes(b"1")

        result = invoke(cache_dir, make_manager(cache_dir), "status")

        assert result.exit_code == 0
        assert "Agent is cached" in result.output


class TestOtherCommands:
    """Test record, desired and clean."""

    def test_record(self, cache_dir):
        cache_dir.mkdir()

        result = invoke(cache_dir, make_manager(cache_dir), "record")

        assert result.exit_code == 0
        assert (cache_dir / "state").read_bytes() == b"1"

    def test_desired(self, cache_dir):
        cache_dir.mkdir()
        (cache_dir / "desired-image").write_text("sub/dir/pinned.tar\n")

        result = invoke(cache_dir, make_manager(cache_dir), "desired")

        assert result.exit_code == 0
        assert result.output.strip() == f"{cache_dir}/pinned.tar"

    def test_desired_undecodable_name(self, cache_dir):
        """Test that a non-UTF-8 locator entry prints its raw bytes."""
        cache_dir.mkdir()
        (cache_dir / "desired-image").write_bytes(b"\xff\xfeimg.tar\n")

        result = invoke(cache_dir, make_manager(cache_dir), "desired")

        assert result.exit_code == 0
        assert result.exception is None
        expected = os.fsencode(str(cache_dir)) + b"/\xff\xfeimg.tar"
        assert result.stdout_bytes.strip() == expected

    def test_desired_missing_locator(self, cache_dir):
        result = invoke(cache_dir, make_manager(cache_dir), "desired")

        assert result.exit_code == 1

    def test_clean(self, cache_dir):
        cache_dir.mkdir()
        (cache_dir / "ecs-agent.tar").write_bytes(b"agent")
        (cache_dir / "ecs-agent.tarq7w1zz").write_bytes(b"partial")

        result = invoke(cache_dir, make_manager(cache_dir), "clean")

        assert result.exit_code == 0
        assert "Removed 1 temp file" in result.output
        assert not (cache_dir / "ecs-agent.tarq7w1zz").exists()
        assert (cache_dir / "ecs-agent.tar").exists()


class TestLoadConfig:
    """Test CLI configuration resolution."""

    def test_config_file_with_cache_dir_override(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(
            json.dumps({"cache_dir": "/srv/cache", "default_region": "eu-north-1"})
        )

        config = load_config(str(config_path), str(tmp_path / "override"))

        assert config.cache_dir == tmp_path / "override"
        assert config.agent_tarball == tmp_path / "override" / "ecs-agent.tar"
        assert config.default_region == "eu-north-1"

    def test_cache_dir_keeps_explicit_env_paths(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AGENTCACHE_DESIRED_IMAGE", "/etc/ecs/desired-image")
        monkeypatch.delenv("AGENTCACHE_DIR", raising=False)

        config = load_config(None, str(tmp_path / "c"))

        assert config.desired_image_locator == Path("/etc/ecs/desired-image")
        assert config.agent_tarball == tmp_path / "c" / "ecs-agent.tar"
        assert config.cache_state == tmp_path / "c" / "state"

    def test_cache_dir_keeps_explicit_file_paths(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(
            json.dumps(
                {
                    "cache_dir": "/srv/cache",
                    "agent_tarball": "/srv/images/agent.tar",
                    "cache_state": "/srv/cache/state",
                }
            )
        )

        config = load_config(str(config_path), str(tmp_path / "override"))

        assert config.agent_tarball == Path("/srv/images/agent.tar")
        # Matches the derived default, so it follows the new cache dir
        assert config.cache_state == tmp_path / "override" / "state"
        assert config.desired_image_locator == tmp_path / "override" / "desired-image"

    def test_missing_config_file(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(
            cli, ["--config", str(tmp_path / "absent.json"), "status"]
        )

        assert result.exit_code != 0
        assert "Config file not found" in result.output
