"""Tests for the submission queue.

Tests verify:
- At most ``concurrency`` admitted executions run at once
- Backends that do not require admission bypass the bound
- Backend failures are reported in the result, never raised
- A run without a transaction id is a failed submission
"""

import asyncio

import pytest

from oracle_gateway.exceptions import ExecutionError
from oracle_gateway.submission.dto import ExecutionOutput
from oracle_gateway.submission.queue import TRANSACTION_ID_NOT_FOUND, SubmissionQueue
from tests.conftest import TX_ID, FakeBackend


class GatedBackend:
    """Backend whose executions block until ``release`` is set."""

    name = "gated"

    def __init__(self, requires_admission: bool = True):
        self.requires_admission = requires_admission
        self.release = asyncio.Event()
        self.active = 0
        self.max_active = 0
        self.started = 0

    def check_configuration(self) -> None:
        pass

    async def execute(self, inputs, function_name, label) -> ExecutionOutput:
        self.started += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self.release.wait()
        finally:
            self.active -= 1
        return ExecutionOutput(True, TX_ID, "", label)


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        SubmissionQueue(FakeBackend(), concurrency=0)


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [1, 2])
async def test_admitted_executions_are_bounded(concurrency):
    backend = GatedBackend()
    queue = SubmissionQueue(backend, concurrency=concurrency)

    tasks = [
        asyncio.create_task(queue.submit([], "set_sgx_data", f"L{i}", f"C{i}")) for i in range(5)
    ]
    await _settle()

    assert backend.started == concurrency
    assert queue.running == concurrency
    assert queue.waiting == 5 - concurrency

    backend.release.set()
    results = await asyncio.gather(*tasks)

    assert backend.max_active == concurrency
    assert all(result.transaction_id == TX_ID for result in results)
    assert queue.running == 0
    assert queue.waiting == 0


@pytest.mark.asyncio
async def test_backend_without_admission_is_not_bounded():
    backend = GatedBackend(requires_admission=False)
    queue = SubmissionQueue(backend, concurrency=1)

    tasks = [asyncio.create_task(queue.submit([], "f", "L", "C")) for _ in range(4)]
    await _settle()

    assert backend.started == 4
    backend.release.set()
    await asyncio.gather(*tasks)


@pytest.mark.asyncio
async def test_successful_submission_reports_transaction_id():
    backend = FakeBackend()
    queue = SubmissionQueue(backend)

    result = await queue.submit(["u", "r", "s", "a"], "set_sgx_data", "SET_SGX_DATA:BTC", "BTC")

    assert result.succeeded
    assert result.transaction_id == TX_ID
    assert result.error_message is None
    assert backend.calls == [(["u", "r", "s", "a"], "set_sgx_data", "SET_SGX_DATA:BTC")]


@pytest.mark.asyncio
async def test_transaction_id_in_error_output_counts():
    queue = SubmissionQueue(FakeBackend(ExecutionOutput(True, "", f"warn {TX_ID}", "L")))

    result = await queue.submit([], "f", "L", "BTC")

    assert result.transaction_id == TX_ID


@pytest.mark.asyncio
async def test_backend_error_becomes_error_message():
    queue = SubmissionQueue(FakeBackend(ExecutionError("[L] out of credits")))

    result = await queue.submit([], "f", "L", "ETH")

    assert not result.succeeded
    assert result.coin_name == "ETH"
    assert result.error_message == "[L] out of credits"
    assert queue.running == 0


@pytest.mark.asyncio
async def test_missing_transaction_id_is_a_failure():
    queue = SubmissionQueue(FakeBackend(ExecutionOutput(True, "all good", "", "L")))

    result = await queue.submit([], "f", "L", "BTC")

    assert result.transaction_id is None
    assert result.error_message == TRANSACTION_ID_NOT_FOUND


@pytest.mark.asyncio
async def test_slot_is_released_after_failure():
    backend = FakeBackend(ExecutionError("boom"), ExecutionOutput(True, TX_ID, "", "L"))
    queue = SubmissionQueue(backend, concurrency=1)

    first = await queue.submit([], "f", "L", "BTC")
    second = await asyncio.wait_for(queue.submit([], "f", "L", "BTC"), timeout=5)

    assert first.error_message == "boom"
    assert second.transaction_id == TX_ID
