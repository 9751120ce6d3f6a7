"""
Configuration management for the object storage gateway.

This module uses Pydantic Settings to load configuration from environment variables
(and an optional .env file).
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import AddressMode


class GatewaySettings(BaseSettings):
    """
    Central configuration for the gateway.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # === HTTP Server ===
    listen_host: str = Field(
        default="0.0.0.0",  # noqa: S104
        alias="GATEWAY_HOST",
        description="Address the HTTP server binds to",
    )

    listen_port: int = Field(
        default=3000,
        alias="GATEWAY_PORT",
        ge=1,
        le=65535,
        description="Port the HTTP server listens on",
    )

    request_timeout_seconds: float = Field(
        default=30.0,
        alias="REQUEST_TIMEOUT_SECONDS",
        gt=0,
        description="Deadline applied to every gateway request",
    )

    # === Backend Discovery ===
    backend_name_prefix: str = Field(
        default="amazin-object-storage-node-",
        alias="BACKEND_NAME_PREFIX",
        min_length=1,
        description="Container name fragment identifying storage backends",
    )

    backend_port: int = Field(
        default=9000,
        alias="BACKEND_PORT",
        ge=1,
        le=65535,
        description="Port of the S3 API inside the shared network",
    )

    backend_address_mode: AddressMode = Field(
        default=AddressMode.HOSTNAME,
        alias="BACKEND_ADDRESS_MODE",
        description="Dial backends by container hostname or by container IP",
    )

    backend_access_key_env: str = Field(
        default="MINIO_ACCESS_KEY",
        alias="BACKEND_ACCESS_KEY_ENV",
        description="Backend container env var holding the access key",
    )

    backend_secret_key_env: str = Field(
        default="MINIO_SECRET_KEY",
        alias="BACKEND_SECRET_KEY_ENV",
        description="Backend container env var holding the secret key",
    )

    docker_timeout_seconds: float = Field(
        default=10.0,
        alias="DOCKER_TIMEOUT_SECONDS",
        gt=0,
        description="Socket timeout for Docker engine API calls",
    )

    discovery_cache_ttl_seconds: float = Field(
        default=0.0,
        alias="DISCOVERY_CACHE_TTL_SECONDS",
        ge=0,
        description="Reuse a discovery snapshot for this long (0 disables the cache)",
    )

    # === Backend Storage ===
    bucket_name: str = Field(
        default="spacelift-storage",
        alias="BUCKET_NAME",
        min_length=3,
        max_length=63,
        description="Bucket holding gateway objects on every backend",
    )

    backend_region: str = Field(
        default="us-east-1",
        alias="BACKEND_REGION",
        description="Region name used to sign S3 requests",
    )

    backend_connect_timeout_seconds: float = Field(
        default=5.0,
        alias="BACKEND_CONNECT_TIMEOUT_SECONDS",
        gt=0,
        description="Connect timeout for backend S3 calls",
    )

    backend_read_timeout_seconds: float = Field(
        default=30.0,
        alias="BACKEND_READ_TIMEOUT_SECONDS",
        gt=0,
        description="Read timeout for backend S3 calls",
    )

    io_worker_threads: int = Field(
        default=16,
        alias="IO_WORKER_THREADS",
        ge=1,
        description="Threads per executor pool running blocking SDK calls",
    )

    # === Logging ===
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    enable_tracing: bool = Field(
        default=False,
        alias="ENABLE_TRACING",
        description="If true, export OpenTelemetry spans",
    )

    otel_exporter_endpoint: str = Field(
        default="http://127.0.0.1:4317",
        alias="OTEL_EXPORTER_OTLP_ENDPOINT",
        description="OTLP gRPC endpoint for exporting traces",
    )

    otel_exporter_insecure: bool = Field(
        default=True,
        alias="OTEL_EXPORTER_OTLP_INSECURE",
        description="Use insecure (non-TLS) connection for OTLP exporter",
    )

    @property
    def discovery_cache_enabled(self) -> bool:
        return self.discovery_cache_ttl_seconds > 0

    @field_validator("backend_access_key_env", "backend_secret_key_env")
    @classmethod
    def validate_env_name(cls, v: str) -> str:
        """Env var names are matched as "NAME=" prefixes, so they may not contain '='."""
        if not v or "=" in v:
            raise ValueError(f"invalid environment variable name {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log_level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels} (got {v})")
        return v_upper


# Global settings instance
_settings: GatewaySettings | None = None


def get_settings() -> GatewaySettings:
    """
    Get the global GatewaySettings instance.

    Settings are loaded once and reused throughout the application.

    Returns:
        GatewaySettings: The global configuration instance
    """
    global _settings
    if _settings is None:
        _settings = GatewaySettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None
