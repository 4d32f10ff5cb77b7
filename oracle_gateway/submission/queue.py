"""Submission queue with bounded concurrency.

Local proving is CPU and memory heavy, so backends that set
``requires_admission`` run at most ``concurrency`` executions at once; further
requests wait in FIFO order. Other backends execute immediately.
"""

import asyncio
import logging
from collections.abc import Sequence

from oracle_gateway.submission.dto import ExecutionOutput, SubmissionResult, extract_transaction_id
from oracle_gateway.submission.protocol import SubmissionBackend

logger = logging.getLogger(__name__)

TRANSACTION_ID_NOT_FOUND = "Transaction ID not found in output."


class SubmissionQueue:
    """Admits executions to a backend and normalizes their outcome."""

    def __init__(self, backend: SubmissionBackend, concurrency: int = 1) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._backend = backend
        self._concurrency = concurrency
        self._semaphore = asyncio.Semaphore(concurrency)
        self._waiting = 0
        self._running = 0

    @property
    def backend(self) -> SubmissionBackend:
        return self._backend

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def waiting(self) -> int:
        return self._waiting

    @property
    def running(self) -> int:
        return self._running

    def check_configuration(self) -> None:
        self._backend.check_configuration()

    async def submit(
        self,
        inputs: Sequence[str],
        function_name: str,
        label: str,
        coin_name: str,
    ) -> SubmissionResult:
        """Execute ``function_name`` and report the transaction id or the error.

        Never raises for backend failures; the error text is carried in
        ``SubmissionResult.error_message``.
        """
        try:
            if self._backend.requires_admission:
                output = await self._admitted(inputs, function_name, label)
            else:
                output = await self._backend.execute(inputs, function_name, label)
        except Exception as e:
            logger.error(f"{label} Submission failed: {e}")
            return SubmissionResult(coin_name=coin_name, error_message=str(e))

        transaction_id = extract_transaction_id(output)
        if transaction_id is None:
            logger.warning(f"{label} {TRANSACTION_ID_NOT_FOUND}")
            return SubmissionResult(coin_name=coin_name, error_message=TRANSACTION_ID_NOT_FOUND)

        logger.info(f"{label} Submitted transaction {transaction_id}")
        return SubmissionResult(coin_name=coin_name, transaction_id=transaction_id)

    async def _admitted(
        self, inputs: Sequence[str], function_name: str, label: str
    ) -> ExecutionOutput:
        if self._semaphore.locked():
            logger.info(
                f"{label} Waiting for submission slot "
                f"(running={self._running}, waiting={self._waiting + 1})"
            )
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1

        self._running += 1
        try:
            return await self._backend.execute(inputs, function_name, label)
        finally:
            self._running -= 1
            self._semaphore.release()
