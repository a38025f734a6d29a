"""Environment-driven settings for the webhook ingestion service.

The process loads this once at startup. Behavior is controlled by environment
variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "webhooks"
    log_level: str = "INFO"
    postgres_dsn: str
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_api_version: str | None = None
    webhook_tolerance_seconds: int = 300
    wallet_service_url: str = "http://token-wallet:8010"
    wallet_service_token: str = ""
    wallet_timeout_seconds: float = 5.0
    free_plan_price_id: str = "price_FREE"
    cors_allow_origin: str = "*"
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
