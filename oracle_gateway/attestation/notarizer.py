"""HTTP client for a single notarizer endpoint."""

import asyncio
import logging
import socket
from dataclasses import replace
from typing import Any

import httpx

from oracle_gateway.attestation.dto import AttestationRequest, NotarizerEndpoint
from oracle_gateway.infrastructure import http_client

logger = logging.getLogger(__name__)


class NotarizerClient:
    """Talks to one notarizer: ``POST /notarize`` and ``GET /info``."""

    def __init__(
        self,
        endpoint: NotarizerEndpoint,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            cert: tuple[str, str] | str | None = None
            if self.endpoint.client_cert and self.endpoint.client_key:
                cert = (self.endpoint.client_cert, self.endpoint.client_key)
            elif self.endpoint.client_cert:
                cert = self.endpoint.client_cert
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                verify=self.endpoint.ca_cert or True,
                cert=cert,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _routing(self) -> tuple[dict[str, str], dict[str, Any] | None]:
        server_name = self.endpoint.server_name
        if not server_name:
            return {"Content-Type": "application/json"}, None
        headers = {"Content-Type": "application/json", "Host": server_name}
        extensions = {"sni_hostname": server_name} if self.endpoint.https else None
        return headers, extensions

    async def notarize(self, request: AttestationRequest) -> list[dict[str, Any]]:
        url = f"{self.endpoint.base_url}/notarize"
        headers, extensions = self._routing()
        logger.debug(f"[notarize] POST {url} with payload: {request.to_payload()}")

        # Failover across notarizers replaces per-request retries here
        response = await http_client.post(
            url,
            json=request.to_payload(),
            headers=headers,
            timeout=self._timeout,
            client=self._get_client(),
            attempts=1,
            extensions=extensions,
        )
        responses = _as_list(response)
        if not responses:
            raise ValueError(f"No attestation response received from {self.endpoint.label}")
        return responses

    async def enclaves_info(self) -> list[dict[str, Any]]:
        url = f"{self.endpoint.base_url}/info"
        headers, extensions = self._routing()
        response = await http_client.get(
            url,
            headers=headers,
            timeout=self._timeout,
            client=self._get_client(),
            extensions=extensions,
        )
        return _as_list(response)


def _as_list(response: Any) -> list[dict[str, Any]]:
    if isinstance(response, list):
        return [item for item in response if isinstance(item, dict)]
    if isinstance(response, dict):
        return [response]
    raise ValueError(f"Unexpected notarizer response type: {type(response).__name__}")


async def resolve_endpoint(endpoint: NotarizerEndpoint) -> list[NotarizerEndpoint]:
    """Expand an endpoint flagged ``resolve`` into one endpoint per resolved IP."""
    if not endpoint.resolve:
        return [endpoint]

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(endpoint.address, endpoint.port, type=socket.SOCK_STREAM)
    except OSError as e:
        logger.warning(f"Failed to resolve notarizer {endpoint.address}: {e}")
        return [endpoint]

    addresses = sorted({str(info[4][0]) for info in infos})
    logger.debug(f"Resolved notarizer {endpoint.address} to {addresses}")
    return [
        replace(endpoint, address=address, server_name=endpoint.address, resolve=False)
        for address in addresses
    ] or [endpoint]
