"""Settings for the oracle gateway.

Sources, highest priority first: init kwargs, environment, ``.env``, then the
JSON file named by ``ORACLE_CONFIG_FILE`` (default ``config.json``). Nested
sections use ``__`` in environment names, e.g. ``LEO_CLI__THREADS=8``.
"""

import os
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from oracle_gateway.attestation.dto import AttestationRequest, NotarizerEndpoint

DEFAULT_CONFIG_FILE = "config.json"


class JobSettings(BaseModel):
    schedule: str = "*/30 * * * *"
    enabled: bool = False


class DeviationJobSettings(JobSettings):
    schedule: str = "* * * * *"
    threshold_percent: float = Field(default=0.5, gt=0)


class CoinJobs(BaseModel):
    periodic: JobSettings = Field(default_factory=lambda: JobSettings(enabled=True))
    deviation: DeviationJobSettings = Field(default_factory=DeviationJobSettings)


class NotarizerSettings(BaseModel):
    address: str = Field(pattern=r"^[-a-zA-Z0-9.:]+$")
    port: int = Field(default=443, ge=1, le=65535)
    https: bool = True
    resolve: bool = False
    ca_cert: str | None = None
    client_cert: str | None = None
    client_key: str | None = None

    def to_endpoint(self) -> NotarizerEndpoint:
        return NotarizerEndpoint(
            address=self.address,
            port=self.port,
            https=self.https,
            resolve=self.resolve,
            ca_cert=self.ca_cert,
            client_cert=self.client_cert,
            client_key=self.client_key,
        )


class AttestationRequestSettings(BaseModel):
    url_template: str = "price_feed: {coin}"
    request_method: Literal["GET", "POST"] = "GET"
    selector: str = "weightedAvgPrice"
    response_format: Literal["json", "html"] = "json"
    encoding_value: Literal["float", "int", "string"] = "float"
    encoding_precision: int = Field(default=6, ge=0, le=12)
    request_headers: dict[str, str] = Field(default_factory=dict)

    def to_request(self) -> AttestationRequest:
        return AttestationRequest(
            url=self.url_template,
            request_method=self.request_method,
            selector=self.selector,
            response_format=self.response_format,
            encoding_value=self.encoding_value,
            encoding_precision=self.encoding_precision,
            request_headers=dict(self.request_headers),
        )


class ProgramFunctions(BaseModel):
    set_unique_id: str = "set_sgx_unique_id"
    set_public_key: str = "set_key"
    set_sgx_data: str = "set_sgx_data"


class ProgramSettings(BaseModel):
    name: str = Field(default="official_oracle_v2.aleo", pattern=r"^[a-zA-Z0-9_.]+$")
    functions: ProgramFunctions = Field(default_factory=ProgramFunctions)


class LeoCliSettings(BaseModel):
    executable: str = "leo"
    threads: int = Field(default=4, ge=1)
    network: Literal["testnet", "mainnet"] = "testnet"
    endpoint: str = "https://api.explorer.provable.com/v1"
    private_key: str | None = None
    attempts: int = Field(default=3, ge=1)
    enable_resource_profiling: bool = False
    resource_profiling_interval: float = Field(default=5.0, ge=1)  # seconds
    memory_alert_mb: float | None = Field(default=None, gt=0)


class DelegatedSettings(BaseModel):
    prover_url: str | None = None
    api_key: str | None = None
    consumer_id: str | None = None
    base_fee_credits: float = Field(default=0.25, ge=0)
    priority_fee_credits: float = Field(default=0.0, ge=0)
    private_fee: bool = False
    broadcast: bool = True
    request_builder_command: list[str] = Field(default_factory=list)


class DiscordSettings(BaseModel):
    webhook_url: str | None = None
    enable_error_alert: bool = True
    enable_cron_job_alert: bool = False
    enable_service_status_alert: bool = True
    enable_price_update_alert: bool = False
    enable_transaction_alert: bool = True
    enable_system_health_alert: bool = False


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    internal_api_key: str | None = None
    require_api_key: bool = False

    @model_validator(mode="after")
    def _api_key_present_when_required(self) -> "ServerSettings":
        if self.require_api_key and not self.internal_api_key:
            raise ValueError("server.internal_api_key is required when require_api_key is set")
        return self


class Settings(BaseSettings):
    """Application settings loaded from environment, .env and the JSON config file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    supported_coins: str = Field(default="BTC,ETH,ALEO", alias="SUPPORTED_COINS")
    debug_coins: str | None = Field(default=None, alias="DEBUG_COINS")
    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    prices_dir: str = Field(default="./prices", alias="PRICES_DIR")
    submission_backend: Literal["cli", "delegated"] = Field(
        default="cli", alias="SUBMISSION_BACKEND"
    )
    queue_concurrency: int = Field(default=1, ge=1, alias="QUEUE_CONCURRENCY")

    # Flat fallbacks for secrets commonly provided as plain env vars
    private_key: str | None = Field(default=None, alias="PRIVATE_KEY")
    provable_api_key: str | None = Field(default=None, alias="PROVABLE_API_KEY")
    provable_consumer_id: str | None = Field(default=None, alias="PROVABLE_CONSUMER_ID")

    jobs: dict[str, CoinJobs] = Field(default_factory=dict)
    notarizers: list[NotarizerSettings] = Field(
        default_factory=lambda: [NotarizerSettings(address="sgx.aleooracle.xyz")]
    )
    attestation_request: AttestationRequestSettings = Field(
        default_factory=AttestationRequestSettings
    )
    program: ProgramSettings = Field(default_factory=ProgramSettings)
    leo_cli: LeoCliSettings = Field(default_factory=LeoCliSettings)
    delegated: DelegatedSettings = Field(default_factory=DelegatedSettings)
    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @field_validator("jobs", mode="before")
    @classmethod
    def _upper_job_coins(cls, value: object) -> object:
        if isinstance(value, dict):
            return {str(coin).upper(): jobs for coin, jobs in value.items()}
        return value

    @field_validator("notarizers")
    @classmethod
    def _notarizers_not_empty(cls, value: list[NotarizerSettings]) -> list[NotarizerSettings]:
        if not value:
            raise ValueError("at least one notarizer must be configured")
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        json_file = os.environ.get("ORACLE_CONFIG_FILE", DEFAULT_CONFIG_FILE)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls, json_file=json_file),
            file_secret_settings,
        )

    @property
    def coins(self) -> list[str]:
        return [coin.strip().upper() for coin in self.supported_coins.split(",") if coin.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def jobs_for(self, coin: str) -> CoinJobs:
        return self.jobs.get(coin.upper(), CoinJobs())

    @property
    def leo_private_key(self) -> str | None:
        return self.leo_cli.private_key or self.private_key

    @property
    def delegated_api_key(self) -> str | None:
        return self.delegated.api_key or self.provable_api_key

    @property
    def delegated_consumer_id(self) -> str | None:
        return self.delegated.consumer_id or self.provable_consumer_id
