"""Tests for randomized notarizer failover and attestation retrieval.

Tests verify:
- Every candidate is tried at most once before failing
- The first success stops the iteration
- The last recorded error is surfaced when all candidates fail
- Retrieval appends to the price log and formats the per-coin request
- Enclave info falls back across notarizers
"""

import random

import pytest

from oracle_gateway.attestation.dto import NotarizerEndpoint
from oracle_gateway.attestation.failover import (
    AttemptFailure,
    AttemptSuccess,
    attempt_notarize,
    notarize_with_failover,
)
from oracle_gateway.attestation.retriever import AttestationRetriever
from oracle_gateway.exceptions import NoAttestationError
from tests.conftest import FakeProvider, notarize_payload


# ---------------------------------------------------------------------------
# attempt_notarize
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_attempt_success_builds_result(attestation_request):
    provider = FakeProvider("n1", notarize_payload("50000.5", timestamp=1_700_000_000))

    outcome = await attempt_notarize(provider, attestation_request, "BTC")

    assert isinstance(outcome, AttemptSuccess)
    assert outcome.result.price == "50000.5"
    assert outcome.result.timestamp_ms == 1_700_000_000_000
    assert outcome.result.proof.user_data == "user-data"
    assert outcome.source == "https://n1:443/notarize"


@pytest.mark.asyncio
async def test_attempt_failure_is_a_value_not_an_exception(attestation_request):
    provider = FakeProvider("n1", ConnectionError("refused"))

    outcome = await attempt_notarize(provider, attestation_request, "BTC")

    assert isinstance(outcome, AttemptFailure)
    assert outcome.error == "refused"


@pytest.mark.asyncio
async def test_malformed_response_is_a_failure(attestation_request):
    provider = FakeProvider("n1", {"timestamp": 1})

    outcome = await attempt_notarize(provider, attestation_request, "BTC")

    assert isinstance(outcome, AttemptFailure)


# ---------------------------------------------------------------------------
# notarize_with_failover
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_all_fail_tries_each_candidate_once(attestation_request):
    providers = [FakeProvider(f"n{i}", RuntimeError(f"down {i}")) for i in range(5)]

    with pytest.raises(NoAttestationError) as exc_info:
        await notarize_with_failover(providers, attestation_request, "BTC", rng=random.Random(7))

    assert [p.calls for p in providers] == [1, 1, 1, 1, 1]
    assert str(exc_info.value).startswith("down ")


@pytest.mark.asyncio
async def test_first_success_wins(attestation_request):
    providers = [FakeProvider(f"n{i}", notarize_payload("100")) for i in range(4)]

    result = await notarize_with_failover(providers, attestation_request, "BTC")

    assert result.price == "100"
    assert sum(p.calls for p in providers) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", range(20))
async def test_attempts_never_exceed_candidates(attestation_request, seed):
    rng = random.Random(seed)
    good = rng.randrange(6)
    providers = [
        FakeProvider(f"n{i}", notarize_payload("7") if i == good else RuntimeError("x"))
        for i in range(6)
    ]

    result = await notarize_with_failover(providers, attestation_request, "ETH", rng=rng)

    assert result.price == "7"
    assert providers[good].calls == 1
    assert all(p.calls <= 1 for p in providers)
    assert sum(p.calls for p in providers) <= len(providers)


@pytest.mark.asyncio
async def test_failover_does_not_mutate_caller_list(attestation_request):
    providers = [FakeProvider(f"n{i}", RuntimeError("x")) for i in range(3)]
    snapshot = list(providers)

    with pytest.raises(NoAttestationError):
        await notarize_with_failover(providers, attestation_request, "BTC")

    assert providers == snapshot


@pytest.mark.asyncio
async def test_empty_candidate_set_fails(attestation_request):
    with pytest.raises(NoAttestationError):
        await notarize_with_failover([], attestation_request, "BTC")


# ---------------------------------------------------------------------------
# AttestationRetriever
# ---------------------------------------------------------------------------


def _retriever(providers, attestation_request, price_log) -> AttestationRetriever:
    by_address = {p.endpoint.address: p for p in providers}
    return AttestationRetriever(
        endpoints=[NotarizerEndpoint(address=name, port=443) for name in by_address],
        request_template=attestation_request,
        price_log=price_log,
        provider_factory=lambda endpoint: by_address[endpoint.address],
        rng=random.Random(1),
    )


def test_retriever_requires_endpoints(attestation_request, price_log):
    with pytest.raises(ValueError):
        AttestationRetriever([], attestation_request, price_log)


def test_build_request_uses_lowercase_coin(attestation_request, price_log):
    retriever = _retriever([FakeProvider("n1", notarize_payload("1"))], attestation_request, price_log)

    assert retriever.build_request("BTC").url == "price_feed: btc"


@pytest.mark.asyncio
async def test_get_attestation_appends_to_price_log(attestation_request, price_log):
    providers = [
        FakeProvider("n1", RuntimeError("down")),
        FakeProvider("n2", notarize_payload("50123.45", timestamp=1_700_000_123_000)),
    ]
    retriever = _retriever(providers, attestation_request, price_log)

    result = await retriever.get_attestation("BTC")

    assert result.price == "50123.45"
    last = price_log.last("BTC")
    assert last is not None
    assert (last.timestamp_ms, last.price) == (1_700_000_123_000, "50123.45")


@pytest.mark.asyncio
async def test_failed_retrieval_leaves_price_log_untouched(attestation_request, price_log):
    retriever = _retriever([FakeProvider("n1", RuntimeError("down"))], attestation_request, price_log)

    with pytest.raises(NoAttestationError):
        await retriever.get_attestation("BTC")

    assert price_log.last("BTC") is None


@pytest.mark.asyncio
async def test_enclave_info_skips_empty_and_failing_notarizers(attestation_request, price_log):
    info = {"signerPubKey": "aleo1signer", "info": {"aleo": {"uniqueId": "123field"}}}
    providers = [
        FakeProvider("n1", RuntimeError("x")),
        FakeProvider("n2", RuntimeError("x"), info=[info]),
    ]
    retriever = _retriever(providers, attestation_request, price_log)

    assert await retriever.enclave_info() == info


@pytest.mark.asyncio
async def test_enclave_info_without_any_answer_fails(attestation_request, price_log):
    retriever = _retriever([FakeProvider("n1", RuntimeError("x"))], attestation_request, price_log)

    with pytest.raises(NoAttestationError):
        await retriever.enclave_info()
