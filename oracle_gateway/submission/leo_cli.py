"""Local CLI submission backend.

Spawns ``leo execute <program>/<function> <inputs...> --network ... --endpoint ...
--broadcast -y`` once per attempt and streams both output pipes. The CLI may
exit non-zero after the network already accepted the transaction, so an
attempt counts as successful when any of these hold:

- the process exits with code 0 and wrote nothing to stderr
- a transaction id appears in either stream
- a ``status code 201`` marker appears in either stream

As soon as a transaction id is seen the process is terminated.
"""

import asyncio
import logging
import os
import shutil
from collections.abc import Sequence

from oracle_gateway.exceptions import ConfigurationError, ExecutionError
from oracle_gateway.infrastructure.retry import CLI_ATTEMPTS, SleepType, retry_call
from oracle_gateway.submission.dto import (
    SUCCESS_STATUS_MARKER,
    ExecutionOutput,
    find_transaction_id,
)
from oracle_gateway.submission.profiling import AlertCallback, ProcessProfiler

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


class LeoCliBackend:
    """Runs program functions through the local ``leo`` CLI."""

    name = "cli"
    requires_admission = True

    def __init__(
        self,
        program_name: str,
        network: str,
        endpoint: str,
        threads: int = 4,
        executable: str | Sequence[str] = "leo",
        private_key: str | None = None,
        attempts: int = CLI_ATTEMPTS,
        sleep: SleepType = asyncio.sleep,
        enable_resource_profiling: bool = False,
        resource_profiling_interval: float = 5.0,
        memory_alert_mb: float | None = None,
        on_resource_alert: AlertCallback | None = None,
    ) -> None:
        self._program_name = program_name
        self._network = network
        self._endpoint = endpoint
        self._threads = threads
        self._executable = [executable] if isinstance(executable, str) else list(executable)
        self._private_key = private_key
        self._attempts = attempts
        self._sleep = sleep
        self._enable_resource_profiling = enable_resource_profiling
        self._resource_profiling_interval = resource_profiling_interval
        self._memory_alert_mb = memory_alert_mb
        self._on_resource_alert = on_resource_alert

    def check_configuration(self) -> None:
        if not self._program_name:
            raise ConfigurationError("Aleo program name is not configured")
        if shutil.which(self._executable[0]) is None:
            raise ConfigurationError(f"CLI executable not found: {self._executable[0]}")

    def build_command(self, inputs: Sequence[str], function_name: str) -> list[str]:
        return [
            *self._executable,
            "execute",
            f"{self._program_name}/{function_name}",
            *inputs,
            "--network",
            self._network,
            "--endpoint",
            self._endpoint,
            "--broadcast",
            "-y",
        ]

    def _build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env["RAYON_NUM_THREADS"] = str(self._threads)
        if self._private_key:
            env["PRIVATE_KEY"] = self._private_key
        return env

    async def execute(
        self, inputs: Sequence[str], function_name: str, label: str
    ) -> ExecutionOutput:
        async def _attempt() -> ExecutionOutput:
            return await self._run_once(inputs, function_name, label)

        return await retry_call(
            _attempt,
            label=label,
            attempts=self._attempts,
            retry_on=(ExecutionError, OSError),
            sleep=self._sleep,
        )

    async def _run_once(
        self, inputs: Sequence[str], function_name: str, label: str
    ) -> ExecutionOutput:
        command = self.build_command(inputs, function_name)
        logger.info(f"{label} Executing {function_name} with {self._threads} threads")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._build_env(),
            )
        except FileNotFoundError as e:
            raise ConfigurationError(f"[{label}] Command not found: {command[0]}") from e

        stdout_chunks: list[str] = []
        stderr_chunks: list[str] = []
        terminated = False

        def _terminate_on_transaction() -> None:
            nonlocal terminated
            if terminated:
                return
            if find_transaction_id("".join(stdout_chunks)) or find_transaction_id(
                "".join(stderr_chunks)
            ):
                terminated = True
                logger.info(f"{label} Transaction id observed, terminating CLI process")
                try:
                    process.terminate()
                except ProcessLookupError:
                    pass  # Already exited

        async def _pump(
            stream: asyncio.StreamReader | None, chunks: list[str], level: int
        ) -> None:
            if stream is None:
                return
            while True:
                chunk = await stream.read(_READ_CHUNK)
                if not chunk:
                    return
                text = chunk.decode("utf-8", errors="replace")
                chunks.append(text)
                for line in text.splitlines():
                    if line.strip():
                        logger.log(level, f"{label} {line}")
                _terminate_on_transaction()

        profiler_task: asyncio.Task[None] | None = None
        if self._enable_resource_profiling:
            profiler = ProcessProfiler(
                process.pid,
                label,
                interval=self._resource_profiling_interval,
                memory_alert_mb=self._memory_alert_mb,
                on_alert=self._on_resource_alert,
            )
            profiler_task = asyncio.create_task(profiler.run())

        try:
            await asyncio.gather(
                _pump(process.stdout, stdout_chunks, logging.INFO),
                _pump(process.stderr, stderr_chunks, logging.WARNING),
            )
            code = await process.wait()
        finally:
            if profiler_task is not None:
                profiler_task.cancel()
            if process.returncode is None:
                logger.warning(f"{label} Killing unfinished CLI process {process.pid}")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass  # Already exited
        logger.info(f"{label} Process exited with code {code}")

        data = "".join(stdout_chunks)
        error_output = "".join(stderr_chunks)
        return classify_execution(code, data, error_output, label)


def classify_execution(
    code: int | None, data: str, error_output: str, label: str
) -> ExecutionOutput:
    """Turn a finished CLI run into an ``ExecutionOutput`` or raise ``ExecutionError``."""
    has_transaction_id = bool(find_transaction_id(data) or find_transaction_id(error_output))
    has_success_status = SUCCESS_STATUS_MARKER in data or SUCCESS_STATUS_MARKER in error_output
    is_clean_exit = code == 0 and not error_output

    if is_clean_exit or has_transaction_id or has_success_status:
        return ExecutionOutput(success=True, data=data, error_output=error_output, label=label)

    if error_output.strip():
        message = f"[{label}] {error_output.strip()}"
    else:
        message = f"[{label}] Process exited with code {code}"
    logger.error(message)
    raise ExecutionError(message)
