"""Central environment-driven settings for the payment gateway.

The process loads this once at startup. Behavior is controlled by environment
variables (see `.env.example`).
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8080",
    "https://vibebeads.net",
    "https://www.vibebeads.net",
]


class GatewaySettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "payment-gateway"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3001
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("NODE_ENV", "ENVIRONMENT"),
    )
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_webhook_tolerance_seconds: int = 300
    stripe_timeout_seconds: float = 80.0
    cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    rate_limit_max: int = 100
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_redis_url: str = ""
    max_body_bytes: int = 10 * 1024 * 1024
    webhook_max_body_bytes: int = 100 * 1024
    metrics_enabled: bool = False
    otel_exporter_otlp_endpoint: str = ""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = GatewaySettings()
