"""Application settings and configuration.

This module defines all configuration options for the storefront core service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    Payment provider credentials are optional here; their absence is reported
    when a submission actually needs them, not at startup.
    """

    # Application metadata
    app_name: str = Field(default="Storefront Core", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Record store (NocoDB-style REST API)
    record_store_base_url: str | None = Field(default=None, alias="RECORD_STORE_BASE_URL")
    record_store_api_token: str = Field(default="", alias="RECORD_STORE_API_TOKEN")
    sessions_table_id: str = Field(default="mnsb472ewctetv1", alias="SESSIONS_TABLE_ID")
    orders_table_id: str = Field(default="m6wrl3tzct02afe", alias="ORDERS_TABLE_ID")
    customers_table_id: str = Field(default="m9nb5ra0vb7616y", alias="CUSTOMERS_TABLE_ID")
    record_store_timeout_seconds: float = Field(
        default=10.0,
        alias="RECORD_STORE_TIMEOUT_SECONDS",
    )
    record_store_max_retries: int = Field(default=2, alias="RECORD_STORE_MAX_RETRIES")
    record_store_retry_base_delay: float = Field(
        default=0.25,
        alias="RECORD_STORE_RETRY_BASE_DELAY",
    )

    # Payment providers
    payment_timeout_seconds: float = Field(default=12.0, alias="PAYMENT_TIMEOUT_SECONDS")
    payment_max_retries: int = Field(default=2, alias="PAYMENT_MAX_RETRIES")
    payment_retry_base_delay: float = Field(default=0.3, alias="PAYMENT_RETRY_BASE_DELAY")
    blackcat_base_url: str = Field(
        default="https://api.blackcatpagamentos.com",
        alias="BLACKCAT_BASE_URL",
    )
    blackcat_public_key: str | None = Field(default=None, alias="BLACKCAT_PUBLIC_KEY")
    blackcat_secret_key: str | None = Field(default=None, alias="BLACKCAT_SECRET_KEY")
    hypercash_base_url: str = Field(
        default="https://api.hypercashbrasil.com.br",
        alias="HYPERCASH_BASE_URL",
    )
    hypercash_secret_key: str | None = Field(default=None, alias="HYPERCASH_SECRET_KEY")
    hypercash_company_id: int = Field(default=23, alias="HYPERCASH_COMPANY_ID")

    # Order submission guards
    rate_limit_max_requests: int = Field(default=10, alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_window_seconds: float = Field(default=60.0, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_max_buckets: int = Field(default=10_000, alias="RATE_LIMIT_MAX_BUCKETS")
    idempotency_ttl_seconds: float = Field(default=600.0, alias="IDEMPOTENCY_TTL_SECONDS")

    # Redis shares rate-limit and idempotency state between instances when set
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # Inactivity sweep
    sweep_interval_seconds: float = Field(default=300.0, alias="SWEEP_INTERVAL_SECONDS")
    inactivity_timeout_seconds: float = Field(
        default=300.0,
        alias="INACTIVITY_TIMEOUT_SECONDS",
    )
    sweep_page_size: int = Field(default=1000, alias="SWEEP_PAGE_SIZE")
    sweep_autostart: bool = Field(default=True, alias="SWEEP_AUTOSTART")
    sweep_start_delay_seconds: float = Field(default=10.0, alias="SWEEP_START_DELAY_SECONDS")

    # CORS configuration for the storefront frontend
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def record_store_configured(self) -> bool:
        """Return True when a record store endpoint is available."""
        return bool(self.record_store_base_url)


settings = Settings()
