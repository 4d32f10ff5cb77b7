"""Infrastructure layer providing reusable components.

This module contains shared infrastructure components used across the gateway:
- Retry policy with power-of-two backoff
- HTTP client built on that policy
"""

from oracle_gateway.infrastructure import http_client
from oracle_gateway.infrastructure.retry import (
    CLI_ATTEMPTS,
    DEFAULT_ATTEMPTS,
    DELEGATED_ATTEMPTS,
    HTTP_ATTEMPTS,
    retry_call,
)

__all__ = [
    "http_client",
    "retry_call",
    "DEFAULT_ATTEMPTS",
    "CLI_ATTEMPTS",
    "DELEGATED_ATTEMPTS",
    "HTTP_ATTEMPTS",
]
