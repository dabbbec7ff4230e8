"""Region lookup through the instance metadata service."""

import logging
from typing import Optional

import requests
from typing_extensions import Protocol

from agentcache.errors import CacheError

logger = logging.getLogger(__name__)

METADATA_ENDPOINT = "http://169.254.169.254"
TOKEN_PATH = "/latest/api/token"
REGION_PATH = "/latest/meta-data/placement/region"
TOKEN_TTL_SECONDS = 21600


class MetadataError(CacheError):
    """Raised when the metadata service cannot answer."""

    pass


class RegionProvider(Protocol):
    """Anything that can report the deployment region."""

    def region(self) -> str: ...


class InstanceMetadataClient:
    """Minimal IMDSv2 client that resolves the instance's region."""

    def __init__(
        self,
        endpoint: str = METADATA_ENDPOINT,
        timeout: float = 2.0,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get_token(self) -> str:
        response = self.session.put(
            self.endpoint + TOKEN_PATH,
            headers={"X-aws-ec2-metadata-token-ttl-seconds": str(TOKEN_TTL_SECONDS)},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.text

    def region(self) -> str:
        """Return the region the instance runs in.

        Raises:
            MetadataError: If the service is unreachable or answers badly
        """
        try:
            token = self._get_token()
            response = self.session.get(
                self.endpoint + REGION_PATH,
                headers={"X-aws-ec2-metadata-token": token},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise MetadataError(f"instance metadata unavailable: {e}") from e

        region = response.text.strip()
        if not region:
            raise MetadataError("instance metadata returned an empty region")
        logger.debug(f"Resolved region {region} from instance metadata")
        return region
