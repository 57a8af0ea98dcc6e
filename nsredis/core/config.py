"""Client configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Every field has a default so a bare environment
yields a local Redis on localhost:6379 with compression enabled.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment and .env.

    Connection fields are used only when the client is constructed without
    explicit connection options; see nsredis.domain.value_objects.
    """

    # Client
    client_alias: str = "default"
    app_name: str = "nsredis"
    app_version: str = "1.4.4"
    debug: bool = False

    # Connection: a socket path wins over host/port when set
    redis_socket_path: str | None = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_username: str | None = None
    redis_password: SecretStr | None = None
    redis_socket_connect_timeout: int = 5
    redis_max_connections: int = 10

    # Compression (zlib deflate + base64 text)
    compression_enabled: bool = True
    compression_level: int = 6
    # Payloads at or above this size are compressed off the event loop
    compression_offload_bytes: int = 64 * 1024

    # Transform and key-format caches
    transform_cache_max_size: int = 1000
    fingerprint_prefix_chars: int = 100
    key_cache_max_size: int = 10_000

    # Batching
    bulk_batch_size: int = 100
    snapshot_batch_size: int = 100
    scan_count: int = 1000

    # Slow-operation thresholds (milliseconds)
    slow_get_ms: float = 10.0
    slow_set_ms: float = 30.0

    # Keyspace notifications
    keyspace_notify_flags: str = "KEA"
    keyspace_reconnect_delay_seconds: float = 1.0

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_ranges(self) -> "Settings":
        """Reject values the client cannot operate with.

        - Port must be a valid TCP port.
        - Batch sizes, scan count and cache ceilings must be positive.
        - Compression level follows zlib (0-9).
        """
        if not 0 < self.redis_port < 65536:
            raise ValueError(f"redis_port must be 1-65535, got: {self.redis_port}")
        for name in (
            "bulk_batch_size",
            "snapshot_batch_size",
            "scan_count",
            "transform_cache_max_size",
            "fingerprint_prefix_chars",
            "key_cache_max_size",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got: {getattr(self, name)}")
        if not 0 <= self.compression_level <= 9:
            raise ValueError(
                f"compression_level must be 0-9, got: {self.compression_level}"
            )
        if not 0.0 <= self.telemetry_sample_rate <= 1.0:
            raise ValueError(
                f"telemetry_sample_rate must be 0.0-1.0, got: {self.telemetry_sample_rate}"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached client settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
