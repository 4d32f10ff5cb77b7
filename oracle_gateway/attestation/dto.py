"""Data Transfer Objects for attestation retrieval."""

from dataclasses import dataclass, field
from typing import Any

# Notarizer timestamps below this are seconds, not milliseconds
_MILLIS_THRESHOLD = 10**12


@dataclass(frozen=True)
class NotarizerEndpoint:
    address: str
    port: int
    https: bool = True
    resolve: bool = False
    ca_cert: str | None = None
    client_cert: str | None = None
    client_key: str | None = None
    server_name: str | None = None  # original hostname when address is a resolved IP

    @property
    def base_url(self) -> str:
        scheme = "https" if self.https else "http"
        host = f"[{self.address}]" if ":" in self.address else self.address
        return f"{scheme}://{host}:{self.port}"

    @property
    def label(self) -> str:
        if self.server_name:
            return f"{self.server_name}({self.address}):{self.port}"
        return f"{self.address}:{self.port}"


@dataclass(frozen=True)
class AttestationRequest:
    url: str
    request_method: str
    selector: str
    response_format: str
    encoding_value: str
    encoding_precision: int
    request_headers: dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "requestMethod": self.request_method,
            "selector": self.selector,
            "responseFormat": self.response_format,
            "encodingOptions": {
                "value": self.encoding_value,
                "precision": self.encoding_precision,
            },
            "requestHeaders": dict(self.request_headers),
        }


@dataclass(frozen=True)
class ProofBundle:
    report: str
    user_data: str
    signature: str
    address: str
    request_hash: str


@dataclass(frozen=True)
class AttestationResult:
    coin_name: str
    timestamp_ms: int
    price: str  # decimal string exactly as attested
    proof: ProofBundle
    source_url: str

    @classmethod
    def from_response(
        cls, coin_name: str, payload: dict[str, Any], source_url: str
    ) -> "AttestationResult":
        """Build a result from a notarizer ``/notarize`` response body.

        Raises:
            KeyError: If the response lacks oracle data or the attested value
        """
        oracle_data = payload["oracleData"]
        return cls(
            coin_name=coin_name,
            timestamp_ms=normalize_timestamp_ms(payload["timestamp"]),
            price=str(payload["attestationData"]),
            proof=ProofBundle(
                report=oracle_data["report"],
                user_data=oracle_data["userData"],
                signature=oracle_data["signature"],
                address=oracle_data["address"],
                request_hash=oracle_data.get("requestHash", ""),
            ),
            source_url=source_url,
        )


def normalize_timestamp_ms(value: int | float | str) -> int:
    """Convert a notarizer timestamp (seconds or milliseconds) to milliseconds."""
    timestamp = int(float(value))
    if timestamp < _MILLIS_THRESHOLD:
        return timestamp * 1000
    return timestamp
