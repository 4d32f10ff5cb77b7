"""Attestation retrieval from redundant notarizers.

- notarizer: HTTP client for one notarizer endpoint
- failover: randomized first-success selection across notarizers
- retriever: per-coin retrieval that also appends to the price log
"""

from oracle_gateway.attestation.dto import (
    AttestationRequest,
    AttestationResult,
    NotarizerEndpoint,
    ProofBundle,
)
from oracle_gateway.attestation.failover import notarize_with_failover
from oracle_gateway.attestation.notarizer import NotarizerClient
from oracle_gateway.attestation.protocol import AttestationProvider
from oracle_gateway.attestation.retriever import AttestationRetriever

__all__ = [
    "AttestationProvider",
    "AttestationRequest",
    "AttestationResult",
    "AttestationRetriever",
    "NotarizerClient",
    "NotarizerEndpoint",
    "ProofBundle",
    "notarize_with_failover",
]
