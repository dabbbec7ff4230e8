"""Remote fetch capability for the agent cache.

The cache manager only needs a status code, a readable body stream, and a
way to release the connection. ``HTTPFetcher`` provides that on top of
``requests``; tests supply their own ``Fetcher`` implementations.
"""

import logging
from dataclasses import dataclass
from typing import Any, BinaryIO, Optional

import requests
from typing_extensions import Protocol

from agentcache.errors import FetchError

logger = logging.getLogger(__name__)


@dataclass
class FetchResponse:
    """A fetched remote resource with a live body stream.

    Attributes:
        url: URL that was requested
        status_code: Response status code
        body: Readable binary stream over the response body
    """

    url: str
    status_code: int
    body: BinaryIO
    _connection: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200

    def close(self) -> None:
        """Release the body stream and underlying connection."""
        try:
            self.body.close()
        finally:
            if self._connection is not None:
                self._connection.close()

    def __enter__(self) -> "FetchResponse":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class Fetcher(Protocol):
    """Anything that can GET a URL and return a FetchResponse.

    Implementations raise ``FetchError`` for transport failures and return
    non-success statuses as responses.
    """

    def get(self, url: str) -> FetchResponse: ...


class HTTPFetcher:
    """Streaming HTTP(S) fetcher built on requests."""

    def __init__(
        self,
        timeout: Optional[float] = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the fetcher.

        Args:
            timeout: Connect/read timeout in seconds (None = wait forever)
            session: Optional requests session to reuse connections
        """
        self.timeout = timeout
        self.session = session or requests.Session()

    def get(self, url: str) -> FetchResponse:
        """GET a URL without buffering the body.

        Raises:
            FetchError: On connection, timeout or other transport failure
        """
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"error fetching {url}: {e}", url) from e

        # Let urllib3 undo any content-encoding so the digest sees the object bytes
        response.raw.decode_content = True
        return FetchResponse(
            url=url,
            status_code=response.status_code,
            body=response.raw,
            _connection=response,
        )
