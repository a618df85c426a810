from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Contract Verification Service"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Explorer credentials
    etherscan_api_key: str | None = None
    basescan_api_key: str | None = None
    arbiscan_api_key: str | None = None
    optimism_api_key: str | None = None
    assetchain_api_key: str | None = None

    # Explorer endpoints (etherscan-compatible APIs)
    etherscan_api_url: str = "https://api.etherscan.io/api"
    basescan_api_url: str = "https://api.basescan.org/api"
    arbiscan_api_url: str = "https://api.arbiscan.io/api"
    optimism_api_url: str = "https://api-optimistic.etherscan.io/api"
    assetchain_api_url: str = "https://scan.assetchain.org/api"
    assetchain_enabled: bool = False

    # Explorer transport
    explorer_timeout_seconds: float = 15.0
    explorer_max_attempts: int = 3
    explorer_backoff_base_seconds: float = 0.5
    explorer_backoff_max_seconds: float = 5.0

    # Orchestration
    lane_timeout_seconds: float = 60.0
    request_timeout_seconds: float = 120.0
    default_optimizer_runs: int = 200
    reconcile_strip_metadata: bool = False

    # Compiler
    solc_auto_install: bool = True
    solc_evm_version: str | None = None

    # Security
    cors_origins: list[str] = []  # Empty by default for security

    # Sentry
    sentry_dsn: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "verification"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125
    metrics_schema_version: str = "verification.v1"

    @property
    def explorer_api_keys(self) -> dict[str, str | None]:
        """Credential per network name, as read from the environment."""
        return {
            "ethereum": self.etherscan_api_key,
            "base": self.basescan_api_key,
            "arbitrum": self.arbiscan_api_key,
            "optimism": self.optimism_api_key,
            "assetchain": self.assetchain_api_key,
        }

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
