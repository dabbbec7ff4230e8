"""Remote capabilities: object-store fetch and region lookup."""

from agentcache.remote.fetch import Fetcher, FetchResponse, HTTPFetcher
from agentcache.remote.metadata import (
    InstanceMetadataClient,
    MetadataError,
    RegionProvider,
)

__all__ = [
    "Fetcher",
    "FetchResponse",
    "HTTPFetcher",
    "InstanceMetadataClient",
    "MetadataError",
    "RegionProvider",
]
