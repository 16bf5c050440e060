"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

import re

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from memberchain.config.constants import (
    BLOCKCHAIN_RPC_TIMEOUT,
    CACHE_TTL_DEFAULT,
    DEFAULT_RPC_URLS,
    GAS_LIMIT_MULTIPLIER,
)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Blockchain RPC providers (comma-separated, order is failover order)
    rpc_urls: str = ",".join(DEFAULT_RPC_URLS)
    rpc_timeout: int = Field(
        default=BLOCKCHAIN_RPC_TIMEOUT,
        gt=0,
        description="HTTP request timeout for RPC providers in seconds",
    )
    chain_id: int | None = Field(
        default=None,
        description="Expected chain id; providers reporting another id are skipped",
    )
    use_poa_middleware: bool = True

    # Contracts
    nft_contract_address: str
    usdt_contract_address: str
    owner_wallet_address: str

    # Signing credential (write calls are disabled without it)
    wallet_private_key: str | None = None

    # Database
    database_url: str = "sqlite+aiosqlite:///./memberchain.db"
    database_echo: bool = False

    # Rate limiting
    rpc_max_requests: int = Field(
        default=30, gt=0, description="Max RPC requests per window"
    )
    rpc_window_seconds: float = Field(
        default=60.0, gt=0, description="Trailing window size in seconds"
    )
    rpc_backoff_seconds: float = Field(
        default=2.0, gt=0, description="Sleep before re-checking a full window"
    )
    rpc_cleanup_interval: int = Field(default=60, gt=0)

    # Cache
    max_cache_size: int = Field(default=5000, gt=0)
    cache_default_ttl: int = Field(default=CACHE_TTL_DEFAULT, gt=0)
    cache_sweep_interval: int = Field(default=300, gt=0)

    # Gas
    gas_limit_multiplier: float = Field(default=GAS_LIMIT_MULTIPLIER, ge=1.0)

    # Event synchronization
    event_poll_interval: int = Field(
        default=10, gt=0, description="Seconds between event sync cycles"
    )
    event_block_window: int = Field(
        default=4,
        ge=0,
        description="Extra blocks scanned past the cursor per cycle",
    )
    event_filter_delay: float = Field(
        default=0.5, ge=0, description="Pause between event filter queries"
    )
    event_apply_delay: float = Field(
        default=0.1, ge=0, description="Pause between applied events"
    )
    rate_limit_cooldown: float = Field(
        default=10.0,
        ge=0,
        description="Extra pause after a provider-side rate limit",
    )
    event_start_block: int | None = Field(
        default=None,
        ge=0,
        description="Initial cursor when none is persisted (defaults to head)",
    )

    # Pending actions
    pending_action_timeout_minutes: int = Field(default=30, gt=0)
    pending_sweep_interval: int = Field(default=300, gt=0)

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/memberchain.log"

    # Health check server
    health_check_host: str = "0.0.0.0"
    health_check_port: int = 8081

    # Environment
    environment: str = "development"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator(
        "nft_contract_address",
        "usdt_contract_address",
        "owner_wallet_address",
    )
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate Ethereum address format."""
        if not ADDRESS_PATTERN.match(v):
            raise ValueError(f"Invalid address format: {v}")
        return v.lower()

    @field_validator("wallet_private_key")
    @classmethod
    def validate_private_key(cls, v: str | None) -> str | None:
        """Validate private key format (64 hex chars, optional 0x prefix)."""
        if v is None or v == "":
            return None
        key = v[2:] if v.startswith("0x") else v
        if not re.fullmatch(r"[a-fA-F0-9]{64}", key):
            raise ValueError("WALLET_PRIVATE_KEY must be 64 hex characters")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL uses an async driver."""
        if not v.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must start with postgresql+asyncpg:// "
                "or sqlite+aiosqlite://"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def validate_rpc_urls(self) -> "Settings":
        """Require at least one RPC endpoint."""
        if not self.get_rpc_urls():
            raise ValueError("RPC_URLS must contain at least one endpoint")
        return self

    @model_validator(mode="after")
    def validate_production(self) -> "Settings":
        """Validate production-specific requirements."""
        if self.environment == "production":
            if self.debug:
                raise ValueError("DEBUG must be False in production")
            if self.database_url.startswith("sqlite"):
                raise ValueError("SQLite is not supported in production")
        return self

    def get_rpc_urls(self) -> list[str]:
        """
        Get RPC endpoint URLs in failover order.

        Returns:
            List of non-empty, de-duplicated URLs
        """
        urls: list[str] = []
        for raw in self.rpc_urls.split(","):
            url = raw.strip()
            if url and url not in urls:
                urls.append(url)
        return urls

    @property
    def can_sign(self) -> bool:
        """Whether write calls can be signed."""
        return self.wallet_private_key is not None


settings = Settings()
