"""Job bodies shared by every coin."""

import logging
from typing import Any

from oracle_gateway.attestation.dto import AttestationResult
from oracle_gateway.attestation.retriever import AttestationRetriever
from oracle_gateway.coordinators.deviation import DeviationEvaluator
from oracle_gateway.coordinators.price_log import PriceLog
from oracle_gateway.exceptions import SubmissionError
from oracle_gateway.notify.discord import AlertKind
from oracle_gateway.notify.dispatch import NotificationDispatcher
from oracle_gateway.settings import ProgramFunctions
from oracle_gateway.submission.dto import SubmissionResult
from oracle_gateway.submission.queue import SubmissionQueue

logger = logging.getLogger(__name__)


def coin_logger(coin: str) -> logging.Logger:
    return logging.getLogger(f"oracle_gateway.coins.{coin.upper()}")


class CoinOrchestrator:
    """Runs the periodic, deviation and registration flows.

    Steps inside one run are strictly sequential: retrieve, evaluate,
    submit. Attestation failures propagate to the caller; submission
    failures come back in ``SubmissionResult.error_message``.
    """

    def __init__(
        self,
        retriever: AttestationRetriever,
        evaluator: DeviationEvaluator,
        price_log: PriceLog,
        queue: SubmissionQueue,
        functions: ProgramFunctions,
        notifications: NotificationDispatcher,
    ) -> None:
        self._retriever = retriever
        self._evaluator = evaluator
        self._price_log = price_log
        self._queue = queue
        self._functions = functions
        self._notifications = notifications

    @property
    def queue(self) -> SubmissionQueue:
        return self._queue

    @property
    def retriever(self) -> AttestationRetriever:
        return self._retriever

    async def run_periodic(self, coin: str) -> SubmissionResult:
        """Retrieve an attestation and submit it unconditionally."""
        log = coin_logger(coin)
        log.debug(f"[{coin}] Periodic update")
        result = await self._retriever.get_attestation(coin)
        return await self.submit_attestation(result)

    async def run_deviation(self, coin: str) -> SubmissionResult | None:
        """Retrieve an attestation and submit only if the price moved enough.

        Returns None when the evaluator decided not to submit.
        """
        log = coin_logger(coin)
        # Retrieval appends to the log, so the baseline must be read first
        baseline = await self._price_log.load_last(coin)
        result = await self._retriever.get_attestation(coin)

        if not self._evaluator.evaluate(coin, result.price, baseline):
            log.info(
                f"[{coin}] Deviation below {self._evaluator.threshold_for(coin)}%, "
                f"skipping submission"
            )
            return None

        log.info(f"[{coin}] Deviation threshold reached, submitting {result.price}")
        return await self.submit_attestation(result)

    async def submit_attestation(self, attestation: AttestationResult) -> SubmissionResult:
        coin = attestation.coin_name
        proof = attestation.proof
        submission = await self._queue.submit(
            [proof.user_data, proof.report, proof.signature, proof.address],
            self._functions.set_sgx_data,
            label=f"SET_SGX_DATA:{coin}",
            coin_name=coin,
        )

        if submission.succeeded:
            coin_logger(coin).info(f"[{coin}] Transaction ID: {submission.transaction_id}")
            self._notifications.emit(
                AlertKind.TRANSACTION,
                {
                    "coin": coin,
                    "function": self._functions.set_sgx_data,
                    "status": "success",
                    "transaction_id": submission.transaction_id,
                    "price": attestation.price,
                    "request_hash": proof.request_hash,
                    "timestamp": attestation.timestamp_ms,
                },
            )
            self._notifications.emit(
                AlertKind.PRICE_UPDATE,
                {"coin": coin, "status": "success", "price": attestation.price},
            )
        else:
            coin_logger(coin).error(f"[{coin}] Error setting sgx data: {submission.error_message}")
            self._notifications.emit(
                AlertKind.PRICE_UPDATE,
                {"coin": coin, "status": "failed", "error": submission.error_message},
            )
        return submission

    async def set_unique_id(self, unique_id: str | None = None) -> dict[str, Any]:
        """Register the enclave unique id; read from enclave info when omitted."""
        label = "SET_SGX_UNIQUE_ID"
        if unique_id is None:
            info = await self._retriever.enclave_info()
            unique_id = _aleo_info(info).get("uniqueId")
            if not unique_id:
                raise SubmissionError("Enclave info does not contain uniqueId")
        logger.info(f"[{label}] SGX unique id: {unique_id}")

        transaction_id = await self._register(
            [unique_id], self._functions.set_unique_id, label, {"unique_id": unique_id}
        )
        return {"success": True, "unique_id": unique_id, "transaction_id": transaction_id}

    async def set_signer_public_key(self, public_key: str | None = None) -> dict[str, Any]:
        """Register the enclave signer key; read from enclave info when omitted."""
        label = "SET_SGX_PUBLIC_KEY"
        if public_key is None:
            info = await self._retriever.enclave_info()
            public_key = info.get("signerPubKey")
            if not public_key:
                raise SubmissionError("Enclave info does not contain signerPubKey")
        logger.info(f"[{label}] Signer public key: {public_key}")

        transaction_id = await self._register(
            [public_key, "true"],
            self._functions.set_public_key,
            label,
            {"signer_public_key": public_key},
        )
        return {"success": True, "signer_public_key": public_key, "transaction_id": transaction_id}

    async def _register(
        self, inputs: list[str], function_name: str, label: str, details: dict[str, Any]
    ) -> str:
        result = await self._queue.submit(inputs, function_name, label=label, coin_name=label)
        if not result.succeeded:
            error = SubmissionError(f"[{label}] {result.error_message}")
            self._notifications.emit(
                AlertKind.ERROR, {"error": error, "context": {"operation": label, **details}}
            )
            raise error

        assert result.transaction_id is not None
        self._notifications.emit(
            AlertKind.TRANSACTION,
            {
                "coin": label,
                "function": function_name,
                "status": "success",
                "transaction_id": result.transaction_id,
            },
        )
        return result.transaction_id


def _aleo_info(info: dict[str, Any]) -> dict[str, Any]:
    aleo = (info.get("info") or {}).get("aleo") or {}
    return aleo if isinstance(aleo, dict) else {}
