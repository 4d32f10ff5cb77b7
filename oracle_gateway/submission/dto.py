"""Data Transfer Objects for on-chain submission."""

import re
from dataclasses import asdict, dataclass
from typing import Any

# Aleo transaction ids: "at" followed by a long lowercase alphanumeric token
TRANSACTION_ID_PATTERN = re.compile(r"at[0-9a-z]{50,}")
SUCCESS_STATUS_MARKER = "status code 201"


@dataclass(frozen=True)
class ExecutionOutput:
    """Raw textual output of one backend execution."""

    success: bool
    data: str
    error_output: str
    label: str


@dataclass(frozen=True)
class SubmissionResult:
    coin_name: str
    transaction_id: str | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.transaction_id is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def find_transaction_id(text: str) -> str | None:
    match = TRANSACTION_ID_PATTERN.search(text)
    return match.group(0) if match else None


def extract_transaction_id(output: ExecutionOutput) -> str | None:
    """Search standard output first, then error output."""
    return find_transaction_id(output.data) or find_transaction_id(output.error_output)
