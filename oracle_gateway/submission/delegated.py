"""Delegated-proving submission backend.

Protocol against the remote prover, per execution:

1. ``POST {origin}/jwts/{consumer_id}`` with the API key; the bearer token
   comes back in the ``Authorization`` response header
2. ``GET {prover}/pubkey`` for ``{key_id, public_key}``
3. build the proving request locally and encrypt it to ``public_key``
4. ``POST {prover}/prove/encrypted`` with ``{key_id, ciphertext}``
5. when broadcasting, only ``broadcast_result.status_code == 200`` is success

No local proving happens, so this backend bypasses the admission queue.
Every HTTP call retries transport failures; a broadcast rejection is final.
"""

import asyncio
import json
import logging
import os
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from typing import Any, Protocol
from urllib.parse import urlsplit

import httpx

from oracle_gateway.exceptions import BroadcastError, ConfigurationError, DelegatedProvingError
from oracle_gateway.infrastructure import http_client
from oracle_gateway.infrastructure.retry import DELEGATED_ATTEMPTS, SleepType, retry_call
from oracle_gateway.submission.dto import ExecutionOutput

logger = logging.getLogger(__name__)

DEFAULT_PROVER_HOST = "https://api.provable.com"


def resolve_prover_base(network: str, configured_url: str | None = None) -> str:
    """Configured URL is used verbatim (minus trailing slash); default per network."""
    if not configured_url:
        return f"{DEFAULT_PROVER_HOST}/prove/{network}"
    return configured_url.rstrip("/")


def jwt_url(prover_base: str, consumer_id: str) -> str:
    parts = urlsplit(prover_base)
    if parts.scheme and parts.netloc:
        return f"{parts.scheme}://{parts.netloc}/jwts/{consumer_id}"
    return f"{DEFAULT_PROVER_HOST}/jwts/{consumer_id}"


@dataclass(frozen=True)
class ProvingRequestSpec:
    program_name: str
    function_name: str
    inputs: list[str]
    base_fee: float
    priority_fee: float
    private_fee: bool
    broadcast: bool


class ProvingRequestBuilder(Protocol):
    async def build_encrypted(self, public_key: str, spec: ProvingRequestSpec) -> str:
        """Build a proving request for ``spec`` and return it encrypted to ``public_key``."""
        ...


class CommandProvingRequestBuilder:
    """Builds and encrypts proving requests with an external helper command.

    The helper receives ``{"public_key": ..., "request": {...}}`` as JSON on
    stdin and prints the ciphertext on stdout. ``PRIVATE_KEY`` is passed
    through the environment.
    """

    def __init__(self, command: Sequence[str], private_key: str | None = None) -> None:
        self._command = list(command)
        self._private_key = private_key

    async def build_encrypted(self, public_key: str, spec: ProvingRequestSpec) -> str:
        env = dict(os.environ)
        if self._private_key:
            env["PRIVATE_KEY"] = self._private_key

        process = await asyncio.create_subprocess_exec(
            *self._command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        payload = json.dumps({"public_key": public_key, "request": asdict(spec)}).encode()
        stdout, stderr = await process.communicate(payload)

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise DelegatedProvingError(
                f"Proving request builder exited with code {process.returncode}: {message}"
            )

        ciphertext = stdout.decode("utf-8", errors="replace").strip()
        if not ciphertext:
            raise DelegatedProvingError("Proving request builder produced no ciphertext")
        return ciphertext


class DelegatedProvingBackend:
    """Submits executions through a remote delegated-proving service."""

    name = "delegated"
    requires_admission = False

    def __init__(
        self,
        program_name: str,
        network: str,
        api_key: str | None,
        consumer_id: str | None,
        request_builder: ProvingRequestBuilder | None,
        prover_url: str | None = None,
        base_fee_credits: float = 0.25,
        priority_fee_credits: float = 0.0,
        private_fee: bool = False,
        broadcast: bool = True,
        client: httpx.AsyncClient | None = None,
        attempts: int = DELEGATED_ATTEMPTS,
        sleep: SleepType = asyncio.sleep,
    ) -> None:
        self._program_name = program_name
        self._api_key = api_key
        self._consumer_id = consumer_id
        self._request_builder = request_builder
        self._prover_base = resolve_prover_base(network, prover_url)
        self._base_fee = base_fee_credits
        self._priority_fee = priority_fee_credits
        self._private_fee = private_fee
        self._broadcast = broadcast
        self._client = client
        self._attempts = attempts
        self._sleep = sleep

    @property
    def prover_base(self) -> str:
        return self._prover_base

    def check_configuration(self) -> None:
        if not self._api_key or not self._consumer_id:
            raise ConfigurationError(
                "Missing Provable credentials: set PROVABLE_API_KEY and PROVABLE_CONSUMER_ID"
            )
        if self._request_builder is None:
            raise ConfigurationError("No proving request builder configured")

    async def execute(
        self, inputs: Sequence[str], function_name: str, label: str
    ) -> ExecutionOutput:
        try:
            self.check_configuration()
        except ConfigurationError as e:
            raise ConfigurationError(f"[{label}] {e}") from e

        async def _attempt() -> ExecutionOutput:
            try:
                return await self._run_once(list(inputs), function_name, label)
            except BroadcastError:
                raise
            except Exception as e:
                logger.error(f"{label} Delegated proving failed: {e}")
                raise DelegatedProvingError(f"[{label}] Delegated proving failed: {e}") from e

        return await retry_call(
            _attempt, label=label, attempts=self._attempts, sleep=self._sleep
        )

    async def _run_once(
        self, inputs: list[str], function_name: str, label: str
    ) -> ExecutionOutput:
        assert self._request_builder is not None

        jwt = await self._get_jwt(label)
        pubkey = await self._get_pubkey(jwt, label)

        logger.info(
            f"{label} Building proving request (program={self._program_name}, "
            f"function={function_name})"
        )
        spec = ProvingRequestSpec(
            program_name=self._program_name,
            function_name=function_name,
            inputs=inputs,
            base_fee=self._base_fee,
            priority_fee=self._priority_fee,
            private_fee=self._private_fee,
            broadcast=self._broadcast,
        )
        ciphertext = await self._request_builder.build_encrypted(pubkey["public_key"], spec)

        logger.info(f"{label} Submitting encrypted proving request to delegated prover")
        body = await self._send_encrypted(
            jwt, {"key_id": pubkey["key_id"], "ciphertext": ciphertext}, label
        )

        if self._broadcast:
            broadcast_result = body.get("broadcast_result")
            if not isinstance(broadcast_result, dict):
                raise DelegatedProvingError(f"{label} Prover response has no broadcast result")
            status_code = broadcast_result.get("status_code")
            if status_code != 200:
                message = broadcast_result.get("message", "")
                raise BroadcastError(
                    f"{label} Failed to broadcast proving request: {message} "
                    f"with status code {status_code}"
                )
            logger.info(f"{label} Proving request broadcasted successfully")

        return ExecutionOutput(success=True, data=json.dumps(body), error_output="", label=label)

    async def _get_jwt(self, label: str) -> str:
        response = await http_client.request(
            "POST",
            jwt_url(self._prover_base, self._consumer_id or ""),
            headers={
                "Content-Type": "application/json",
                "X-Provable-API-Key": self._api_key or "",
            },
            client=self._client,
        )
        if not response.is_success:
            raise DelegatedProvingError(
                f"{label} Failed to obtain Provable JWT: {response.status_code} {response.text}".strip()
            )

        authorization = response.headers.get("authorization")
        if not authorization:
            raise DelegatedProvingError(
                f"{label} Provable JWT response missing Authorization header"
            )
        return authorization

    async def _get_pubkey(self, jwt: str, label: str) -> dict[str, str]:
        response = await http_client.request(
            "GET",
            f"{self._prover_base}/pubkey",
            headers={"Content-Type": "application/json", "Authorization": jwt},
            client=self._client,
        )
        if not response.is_success:
            raise DelegatedProvingError(
                f"{label} Failed to get prover pubkey: {response.status_code} {response.text}".strip()
            )
        return response.json()

    async def _send_encrypted(
        self, jwt: str, payload: dict[str, str], label: str
    ) -> dict[str, Any]:
        response = await http_client.request(
            "POST",
            f"{self._prover_base}/prove/encrypted",
            json=payload,
            headers={"Content-Type": "application/json", "Authorization": jwt},
            client=self._client,
        )

        text = response.text
        body: dict[str, Any] = {}
        if text:
            try:
                parsed = json.loads(text)
                body = parsed if isinstance(parsed, dict) else {"result": parsed}
            except json.JSONDecodeError:
                logger.info(f"{label} Proving response text parsing failed: {text}")
                body = {"message": text}

        if not response.is_success:
            message = body.get("message") or text or (
                f"Delegated proving failed with status {response.status_code}"
            )
            raise DelegatedProvingError(f"{label} {message}")

        return body
