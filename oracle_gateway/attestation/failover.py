"""Randomized notarizer failover.

Each retrieval builds its own candidate array, shuffles it (Fisher-Yates),
then repeatedly picks one remaining candidate uniformly at random and
swap-removes it. The first successful attestation wins; there is no quorum.
"""

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass

from oracle_gateway.attestation.dto import AttestationRequest, AttestationResult
from oracle_gateway.attestation.protocol import AttestationProvider
from oracle_gateway.exceptions import NoAttestationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptSuccess:
    source: str
    result: AttestationResult


@dataclass(frozen=True)
class AttemptFailure:
    source: str
    error: str


AttemptOutcome = AttemptSuccess | AttemptFailure


async def attempt_notarize(
    provider: AttestationProvider, request: AttestationRequest, coin_name: str
) -> AttemptOutcome:
    """Run one notarize call and fold any failure into an ``AttemptFailure``."""
    source = f"{provider.endpoint.base_url}/notarize"
    try:
        responses = await provider.notarize(request)
        return AttemptSuccess(
            source=source,
            result=AttestationResult.from_response(coin_name, responses[0], source),
        )
    except Exception as e:
        message = str(e) or type(e).__name__
        return AttemptFailure(source=source, error=message)


async def notarize_with_failover(
    providers: Sequence[AttestationProvider],
    request: AttestationRequest,
    coin_name: str,
    rng: random.Random | None = None,
) -> AttestationResult:
    """Return the first successful attestation among ``providers``.

    Every candidate is tried at most once.

    Raises:
        NoAttestationError: If no candidate succeeded (carries the last error)
    """
    if not providers:
        raise NoAttestationError(f"No notarizers configured for {coin_name}")

    rng = rng or random.Random()
    candidates = list(providers)
    rng.shuffle(candidates)

    remaining = len(candidates)
    last_error = "no notarizer attempted"
    while remaining > 0:
        index = rng.randrange(remaining)
        candidate = candidates[index]
        candidates[index] = candidates[remaining - 1]
        remaining -= 1

        outcome = await attempt_notarize(candidate, request, coin_name)
        if isinstance(outcome, AttemptSuccess):
            logger.debug(f"Attestation for {coin_name} obtained from {outcome.source}")
            return outcome.result

        last_error = outcome.error
        logger.warning(
            f"Notarizer {outcome.source} failed for {coin_name}: {outcome.error} "
            f"({remaining} candidate(s) left)"
        )

    raise NoAttestationError(last_error)
