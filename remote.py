"""
Deep Intelligence API client

Pushes batches of newly stored instances to the external source update
endpoint. Any status other than 200, or any transport failure, is raised as
ReplicationError so the replication worker can retry the batch.
"""

import logging
from typing import Optional
from urllib.parse import urljoin

import httpx

from errors import ReplicationError
from query.coercion import instance_to_wire

logger = logging.getLogger(__name__)

UPDATE_PATH = "external/source/update"


class DeepintClient:
    """Authenticated client for the external source endpoints."""

    def __init__(
        self,
        base_url: str,
        public_key: str,
        secret_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Deep Intelligence API root (e.g. https://app.deepint.net/api/v1/).
            public_key / secret_key: Source credentials sent on every request.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        if not base_url.endswith("/"):
            base_url += "/"
        self.update_url = urljoin(base_url, UPDATE_PATH)
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "x-public-key": public_key,
                "x-secret-key": secret_key,
            },
        )

    async def push_instances(self, batch: list[list]) -> None:
        """Send one batch of coerced instances. Raises ReplicationError on failure."""
        payload = [instance_to_wire(instance) for instance in batch]
        try:
            response = await self._client.post(self.update_url, json=payload)
        except httpx.HTTPError as e:
            raise ReplicationError(f"Request to {self.update_url} failed: {e}") from e

        if response.status_code != 200:
            raise ReplicationError(
                f"Status code: {response.status_code}", status_code=response.status_code
            )
        logger.debug(f"Pushed {len(batch)} instance(s) to {self.update_url}")

    async def aclose(self) -> None:
        await self._client.aclose()
