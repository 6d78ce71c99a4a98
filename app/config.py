"""
Application configuration.
All settings are loaded from environment variables (or a local .env file).

The static QR payload and the settlement feed credentials have no defaults.
Their absence is not a startup error: the require_* accessors raise
ConfigurationMissingError per request, which the API reports as 500.
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.errors import ConfigurationMissingError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ===========================================
    # QRIS
    # ===========================================
    qris_static_payload: Optional[str] = None

    # ===========================================
    # SETTLEMENT FEED (OrderKuota mutation API)
    # ===========================================
    orderkuota_merchant_id: Optional[str] = None
    orderkuota_api_key: Optional[str] = None
    orderkuota_base_url: str = "https://gateway.okeconnect.com"
    feed_timeout_seconds: float = 10.0

    # ===========================================
    # TELEGRAM NOTIFICATIONS (optional)
    # ===========================================
    telegram_token: Optional[str] = None
    owner_id: Optional[str] = None
    telegram_timeout_seconds: float = 10.0

    # ===========================================
    # LIFECYCLE
    # ===========================================
    transaction_ttl_seconds: int = 5 * 60
    cancel_retention_seconds: int = 30
    sweep_interval_seconds: int = 5 * 60
    sweep_grace_seconds: int = 5 * 60
    max_probe_attempts: int = 100

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_json: bool = True

    host: str = "0.0.0.0"
    port: int = 3000

    def require_static_payload(self) -> str:
        if not self.qris_static_payload:
            raise ConfigurationMissingError(
                "QRIS_STATIC_PAYLOAD",
                "QRIS configuration not found. Set QRIS_STATIC_PAYLOAD in the environment or .env file.",
            )
        return self.qris_static_payload

    def require_feed_credentials(self) -> tuple:
        if not self.orderkuota_merchant_id or not self.orderkuota_api_key:
            raise ConfigurationMissingError(
                "ORDERKUOTA_MERCHANT_ID/ORDERKUOTA_API_KEY",
                "OrderKuota configuration not found. Set ORDERKUOTA_MERCHANT_ID and "
                "ORDERKUOTA_API_KEY in the environment or .env file.",
            )
        return self.orderkuota_merchant_id, self.orderkuota_api_key

    @property
    def telegram_configured(self) -> bool:
        return bool(self.telegram_token and self.owner_id)


@lru_cache
def get_settings() -> Settings:
    return Settings()
