"""Application settings and configuration.

This module defines all configuration options for the walletgate service.
Settings are loaded from environment variables with sensible defaults; the
session signing secret has no default, so a missing ``SIWS_SESSION_SECRET``
aborts startup at import time.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="walletgate", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./walletgate.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Session tokens (required, no fallback)
    siws_session_secret: str = Field(alias="SIWS_SESSION_SECRET", min_length=1)
    session_token_ttl_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        alias="SESSION_TOKEN_TTL_SECONDS",
    )

    # Challenge messages shown to the wallet before signing
    challenge_domain: str = Field(default="walletgate.app", alias="CHALLENGE_DOMAIN")
    siws_app_name: str = Field(default="Walletgate", alias="SIWS_APP_NAME")

    # Nonce and token lifetimes
    download_nonce_ttl_seconds: int = Field(default=300, alias="DOWNLOAD_NONCE_TTL_SECONDS")
    download_token_ttl_seconds: int = Field(default=120, alias="DOWNLOAD_TOKEN_TTL_SECONDS")
    siws_nonce_ttl_seconds: int = Field(default=300, alias="SIWS_NONCE_TTL_SECONDS")
    nonce_sweep_interval_seconds: float = Field(
        default=60.0,
        alias="NONCE_SWEEP_INTERVAL_SECONDS",
    )

    # On-chain ownership oracle (Helius DAS)
    helius_api_key: str | None = Field(default=None, alias="HELIUS_API_KEY")
    helius_rpc_url: str = Field(
        default="https://mainnet.helius-rpc.com",
        alias="HELIUS_RPC_URL",
    )
    ownership_check_timeout_seconds: float = Field(
        default=10.0,
        alias="OWNERSHIP_CHECK_TIMEOUT_SECONDS",
    )

    # Identity provider (Privy)
    privy_app_id: str | None = Field(default=None, alias="PRIVY_APP_ID")
    privy_app_secret: str | None = Field(default=None, alias="PRIVY_APP_SECRET")
    privy_api_url: str = Field(default="https://auth.privy.io/api/v1", alias="PRIVY_API_URL")
    identity_timeout_seconds: float = Field(default=10.0, alias="IDENTITY_TIMEOUT_SECONDS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def privy_enabled(self) -> bool:
        """Return True when identity-provider credentials are configured."""
        return bool(self.privy_app_id and self.privy_app_secret)


settings = Settings()  # type: ignore[call-arg]
