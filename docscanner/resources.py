"""
Display resources: in-memory blobs addressable by URL.

Every upload preview and the finished PDF is published here. The session
that acquired a resource is responsible for releasing it.
"""

import logging
import uuid
from dataclasses import dataclass

logger = logging.getLogger(__name__)

RESOURCE_PREFIX = "/resources"


@dataclass
class Resource:
    """A published blob."""

    token: str
    data: bytes
    media_type: str

    @property
    def url(self) -> str:
        return f"{RESOURCE_PREFIX}/{self.token}"


def token_from_url(url: str) -> str:
    """Extract the registry token from a resource URL."""
    prefix = f"{RESOURCE_PREFIX}/"
    if not url.startswith(prefix):
        raise ValueError(f"Not a resource URL: {url}")
    return url[len(prefix):]


class ResourceRegistry:
    """Holds published blobs until they are released."""

    def __init__(self) -> None:
        self._resources: dict[str, Resource] = {}

    def acquire(self, data: bytes, media_type: str) -> str:
        """Publish a blob and return its URL."""
        resource = Resource(token=uuid.uuid4().hex, data=data, media_type=media_type)
        self._resources[resource.token] = resource
        logger.debug(f"Acquired {resource.url} ({media_type}, {len(data)} bytes)")
        return resource.url

    def release(self, url: str) -> bool:
        """Drop a blob.

        Returns:
            True if the resource was held, False if it was already gone
        """
        resource = self._resources.pop(token_from_url(url), None)
        if resource is None:
            logger.debug(f"Release of unknown resource {url}")
            return False
        logger.debug(f"Released {url}")
        return True

    def get(self, token: str) -> Resource:
        """Look up a live resource.

        Raises:
            KeyError: If the token is unknown or was released
        """
        return self._resources[token]

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, url: str) -> bool:
        try:
            return token_from_url(url) in self._resources
        except ValueError:
            return False
