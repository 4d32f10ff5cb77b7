"""Exceptions raised across the oracle gateway.

Kept in one module so the retry policy, the submission backends and the
scheduler can classify failures without importing each other.
"""


class OracleGatewayError(Exception):
    """Base exception for all oracle gateway errors."""


class ConfigurationError(OracleGatewayError):
    """Raised for invalid schedules or missing credentials."""


class NoAttestationError(OracleGatewayError):
    """Raised when every notarizer candidate failed for one retrieval."""


class ExecutionError(OracleGatewayError):
    """Raised when a CLI submission ends without an accepted transaction."""


class DelegatedProvingError(OracleGatewayError):
    """Raised when a step of the delegated proving protocol fails."""


class BroadcastError(OracleGatewayError):
    """Raised when the network explicitly rejects a broadcast transaction.

    This is a definitive rejection, so the retry policy never retries it.
    """


class SubmissionError(OracleGatewayError):
    """Raised when a registration submission ends without a transaction id."""
