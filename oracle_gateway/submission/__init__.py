"""On-chain submission.

- dto: execution output, submission result, transaction id matching
- protocol: SubmissionBackend contract
- leo_cli: local CLI backend (subject to admission)
- profiling: CPU, memory and I/O sampling of the CLI child process
- delegated: remote delegated-proving backend
- queue: SubmissionQueue with bounded concurrency
"""

from oracle_gateway.submission.delegated import (
    CommandProvingRequestBuilder,
    DelegatedProvingBackend,
    ProvingRequestBuilder,
    ProvingRequestSpec,
    resolve_prover_base,
)
from oracle_gateway.submission.dto import (
    ExecutionOutput,
    SubmissionResult,
    extract_transaction_id,
    find_transaction_id,
)
from oracle_gateway.submission.leo_cli import LeoCliBackend, classify_execution
from oracle_gateway.submission.profiling import ProcessProfiler, ProcessSample
from oracle_gateway.submission.protocol import SubmissionBackend
from oracle_gateway.submission.queue import TRANSACTION_ID_NOT_FOUND, SubmissionQueue

__all__ = [
    "CommandProvingRequestBuilder",
    "DelegatedProvingBackend",
    "ExecutionOutput",
    "LeoCliBackend",
    "ProcessProfiler",
    "ProcessSample",
    "ProvingRequestBuilder",
    "ProvingRequestSpec",
    "SubmissionBackend",
    "SubmissionQueue",
    "SubmissionResult",
    "TRANSACTION_ID_NOT_FOUND",
    "classify_execution",
    "extract_transaction_id",
    "find_transaction_id",
    "resolve_prover_base",
]
