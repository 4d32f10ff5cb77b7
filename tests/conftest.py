"""Shared test fixtures for the oracle gateway."""

import random
import sys
from typing import Any
from unittest.mock import AsyncMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from oracle_gateway.attestation.dto import AttestationRequest, NotarizerEndpoint
from oracle_gateway.attestation.retriever import AttestationRetriever
from oracle_gateway.coordinators.deviation import DeviationEvaluator
from oracle_gateway.coordinators.price_log import PriceLog
from oracle_gateway.notify.dispatch import NotificationDispatcher
from oracle_gateway.orchestration.coin_orchestrator import CoinOrchestrator
from oracle_gateway.orchestration.scheduler import JobScheduler
from oracle_gateway.settings import CoinJobs, ProgramFunctions
from oracle_gateway.submission.dto import ExecutionOutput
from oracle_gateway.submission.queue import SubmissionQueue

TX_ID = "at1" + "k7x2p9q" * 8 + "m3"
PYTHON = sys.executable


def notarize_payload(price: str, timestamp: int = 1_700_000_000_000) -> dict[str, Any]:
    """Body of a successful ``/notarize`` response."""
    return {
        "attestationData": price,
        "timestamp": timestamp,
        "oracleData": {
            "report": "report-bytes",
            "userData": "user-data",
            "signature": "sign1sig",
            "address": "aleo1notarizer",
            "requestHash": "hash-1",
        },
    }


class FakeProvider:
    """In-memory notarizer: replays a scripted sequence of responses or errors."""

    def __init__(self, name: str, *outcomes: Any, info: list[dict[str, Any]] | None = None):
        self.endpoint = NotarizerEndpoint(address=name, port=443)
        self._outcomes = list(outcomes)
        self._info = info or []
        self.calls = 0
        self.info_calls = 0

    async def notarize(self, request: AttestationRequest) -> list[dict[str, Any]]:
        self.calls += 1
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return [outcome]

    async def enclaves_info(self) -> list[dict[str, Any]]:
        self.info_calls += 1
        return self._info


class FakeBackend:
    """Submission backend returning scripted outputs (or raising)."""

    name = "fake"

    def __init__(self, *outcomes: Any, requires_admission: bool = True):
        self.requires_admission = requires_admission
        self._outcomes = list(outcomes) or [ExecutionOutput(True, f"tx {TX_ID}", "", "fake")]
        self.calls: list[tuple[list[str], str, str]] = []
        self.check_configuration_error: Exception | None = None

    def check_configuration(self) -> None:
        if self.check_configuration_error is not None:
            raise self.check_configuration_error

    async def execute(self, inputs, function_name, label) -> ExecutionOutput:
        self.calls.append((list(inputs), function_name, label))
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSink:
    """Notification sink that keeps every (kind, payload) it receives."""

    def __init__(self):
        self.sent: list[tuple[str, dict[str, Any]]] = []

    async def notify(self, kind, payload) -> bool:
        self.sent.append((kind, payload))
        return True


def build_scheduler(
    price_log: PriceLog,
    attestation_request: AttestationRequest,
    provider: FakeProvider | None = None,
    backend: FakeBackend | None = None,
    jobs: dict[str, CoinJobs] | None = None,
    thresholds: dict[str, float] | None = None,
    sink: RecordingSink | None = None,
    coins: tuple[str, ...] = ("BTC", "ETH"),
):
    """Wire a JobScheduler over fakes; the APScheduler instance is never started.

    Returns ``(jobs, scheduler, backend, notifications, orchestrator)``.
    """
    provider = provider or FakeProvider("n1", notarize_payload("100"))
    backend = backend or FakeBackend()
    retriever = AttestationRetriever(
        endpoints=[provider.endpoint],
        request_template=attestation_request,
        price_log=price_log,
        provider_factory=lambda endpoint: provider,
        rng=random.Random(0),
    )
    notifications = NotificationDispatcher(sink)
    orchestrator = CoinOrchestrator(
        retriever,
        DeviationEvaluator(price_log, thresholds or {}),
        price_log,
        SubmissionQueue(backend),
        ProgramFunctions(),
        notifications,
    )
    scheduler = AsyncIOScheduler(timezone="UTC")
    job_scheduler = JobScheduler(scheduler, orchestrator, coins, jobs or {}, notifications)
    return job_scheduler, scheduler, backend, notifications, orchestrator


@pytest.fixture
def attestation_request() -> AttestationRequest:
    return AttestationRequest(
        url="price_feed: {coin}",
        request_method="GET",
        selector="weightedAvgPrice",
        response_format="json",
        encoding_value="float",
        encoding_precision=6,
    )


@pytest.fixture
def price_log(tmp_path) -> PriceLog:
    log = PriceLog(tmp_path / "prices", ["BTC", "ETH"])
    log.open()
    yield log
    log.close()


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Replacement for asyncio.sleep that records requested delays."""
    return AsyncMock(return_value=None)
