"""Submission backend protocol.

Backends implement the methods without explicit inheritance; exactly one is
selected at startup from configuration.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from oracle_gateway.submission.dto import ExecutionOutput


@runtime_checkable
class SubmissionBackend(Protocol):
    """Contract for executing one program function on-chain."""

    name: str

    # True when executions do local proving and must pass the admission queue
    requires_admission: bool

    def check_configuration(self) -> None:
        """Raise ConfigurationError if the backend cannot run."""
        ...

    async def execute(
        self, inputs: Sequence[str], function_name: str, label: str
    ) -> ExecutionOutput:
        """Execute ``function_name`` with ``inputs``; raise on terminal failure."""
        ...
