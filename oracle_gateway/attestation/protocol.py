"""Attestation provider protocol.

Providers implement the methods without explicit inheritance.
"""

from typing import Any, Protocol, runtime_checkable

from oracle_gateway.attestation.dto import AttestationRequest, NotarizerEndpoint


@runtime_checkable
class AttestationProvider(Protocol):
    """Contract for a single notarizer backend."""

    endpoint: NotarizerEndpoint

    async def notarize(self, request: AttestationRequest) -> list[dict[str, Any]]:
        """Return attestation responses for the request or raise.

        Each response carries ``attestationData`` (the price), ``timestamp``
        and ``oracleData`` (report, userData, signature, address, requestHash).
        """
        ...

    async def enclaves_info(self) -> list[dict[str, Any]]:
        """Return enclave descriptors (unique id, signer public key)."""
        ...
