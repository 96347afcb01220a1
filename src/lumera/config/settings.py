"""Application configuration schema and validation."""

from typing import Literal

from pydantic import Field, PostgresDsn, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: Literal["dev", "staging", "prod"] = Field(
        ...,
        description="Application environment",
    )
    db_dsn: PostgresDsn = Field(
        ...,
        description="PostgreSQL database connection string",
    )
    db_pool_min: int = Field(
        default=2,
        ge=1,
        description="Minimum database connection pool size",
    )
    db_pool_max: int = Field(
        default=10,
        ge=1,
        description="Maximum database connection pool size",
    )
    db_connect_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for the pool to open and pass its health check",
    )
    db_close_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for in-flight queries before terminating the pool",
    )
    stripe_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret API key",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe webhook signing secret (whsec_...)",
    )
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Base URL for checkout success/cancel redirects",
    )
    checkout_locale: str = Field(
        default="es",
        description="Locale for the hosted Stripe Checkout page",
    )
    stripe_coupon_launch: str = Field(
        default="LAUNCH40",
        description="Coupon applied when a checkout request sets applyCoupon",
    )
    stripe_price_latam_monthly: str = Field(
        default="",
        description="Monthly price ID for Latin America",
    )
    stripe_price_emea_monthly: str = Field(
        default="",
        description="Monthly price ID for Europe/EMEA",
    )
    stripe_price_usa_monthly: str = Field(
        default="",
        description="Monthly price ID for USA/Canada",
    )
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:3001",
            "http://127.0.0.1:3000",
        ],
        description="Origins allowed to call the API from a browser",
    )
    webhook_server_host: str = Field(
        default="0.0.0.0",
        description="Interface the HTTP server binds to",
    )
    webhook_server_port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="Port the HTTP server listens on",
    )
    payment_ledger_enabled: bool = Field(
        default=True,
        description="Record completed checkouts in the payments table",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("db_pool_max")
    @classmethod
    def validate_pool_max(cls, v: int, info) -> int:
        """Ensure pool_max >= pool_min."""
        if "db_pool_min" in info.data and v < info.data["db_pool_min"]:
            raise ValueError("db_pool_max must be >= db_pool_min")
        return v

    @property
    def checkout_success_url(self) -> str:
        return f"{self.frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def checkout_cancel_url(self) -> str:
        return f"{self.frontend_url}/cancel"


_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create the singleton AppConfig instance."""
    global _config
    if _config is None:
        _config = AppConfig()
    return _config
