"""Attestation retrieval: notarizer failover plus price tracking."""

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import Any

from oracle_gateway.attestation.dto import (
    AttestationRequest,
    AttestationResult,
    NotarizerEndpoint,
)
from oracle_gateway.attestation.failover import notarize_with_failover
from oracle_gateway.attestation.notarizer import NotarizerClient, resolve_endpoint
from oracle_gateway.attestation.protocol import AttestationProvider
from oracle_gateway.coordinators.price_log import PriceLog
from oracle_gateway.exceptions import NoAttestationError

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[NotarizerEndpoint], AttestationProvider]


class AttestationRetriever:
    """Obtains signed prices from the configured notarizers.

    Every successful retrieval is appended to the price log before it is
    returned, whether or not a submission follows.
    """

    def __init__(
        self,
        endpoints: Sequence[NotarizerEndpoint],
        request_template: AttestationRequest,
        price_log: PriceLog,
        provider_factory: ProviderFactory = NotarizerClient,
        rng: random.Random | None = None,
    ) -> None:
        if not endpoints:
            raise ValueError("At least one notarizer endpoint is required")
        self._endpoints = tuple(endpoints)
        self._request_template = request_template
        self._price_log = price_log
        self._provider_factory = provider_factory
        self._rng = rng or random.Random()
        self._providers: dict[NotarizerEndpoint, AttestationProvider] = {}

    @property
    def endpoints(self) -> tuple[NotarizerEndpoint, ...]:
        return self._endpoints

    def build_request(self, coin: str) -> AttestationRequest:
        return replace(
            self._request_template,
            url=self._request_template.url.format(coin=coin.lower()),
        )

    def _provider(self, endpoint: NotarizerEndpoint) -> AttestationProvider:
        provider = self._providers.get(endpoint)
        if provider is None:
            provider = self._providers[endpoint] = self._provider_factory(endpoint)
        return provider

    async def candidates(self) -> list[AttestationProvider]:
        """Fresh candidate list for one retrieval (resolved endpoints included)."""
        providers: list[AttestationProvider] = []
        for endpoint in self._endpoints:
            for resolved in await resolve_endpoint(endpoint):
                providers.append(self._provider(resolved))
        return providers

    async def get_attestation(self, coin: str) -> AttestationResult:
        """Fetch a signed price for ``coin`` and track it.

        Raises:
            NoAttestationError: If every notarizer failed
        """
        request = self.build_request(coin)
        logger.debug(f"[{coin}] Attestation request: {request.to_payload()}")

        result = await notarize_with_failover(
            await self.candidates(), request, coin, rng=self._rng
        )
        await self._price_log.append(coin, result.timestamp_ms, result.price)
        logger.info(f"[{coin}] Attested price {result.price} from {result.source_url}")
        return result

    async def enclave_info(self) -> dict[str, Any]:
        """Return the first enclave descriptor any notarizer reports."""
        providers = await self.candidates()
        self._rng.shuffle(providers)

        last_error = "no notarizer attempted"
        for provider in providers:
            try:
                infos = await provider.enclaves_info()
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.warning(f"Enclave info from {provider.endpoint.label} failed: {e}")
                continue
            if infos:
                return infos[0]
            last_error = f"Enclave info not found at {provider.endpoint.label}"

        raise NoAttestationError(last_error)

    async def close(self) -> None:
        for provider in self._providers.values():
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
        self._providers.clear()
