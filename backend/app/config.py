"""
Application configuration using Pydantic Settings.
All config is loaded from environment variables / .env file.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # ── App ──────────────────────────────────────────────
    APP_NAME: str = "iot-paas-api"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"  # development | production
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"  # comma-separated

    # ── Supabase ─────────────────────────────────────────
    SUPABASE_URL: str
    SUPABASE_KEY: str  # anon/public key
    SUPABASE_SERVICE_KEY: str = ""  # service_role key (provisioning only)
    SUPABASE_JWT_SECRET: str = ""  # set to verify access tokens locally
    STORE_TIMEOUT_SECONDS: int = 10

    # ── MQTT Broker (handed to devices) ──────────────────
    MQTT_BROKER_HOST: str = "broker.emqx.io"
    MQTT_BROKER_PORT: int = 8883
    MQTT_USE_TLS: bool = True

    # ── EMQX Management API ──────────────────────────────
    EMQX_API_URL: str = ""  # e.g. https://emqx.internal:18083
    EMQX_API_KEY: str = ""
    EMQX_API_SECRET: str = ""
    BROKER_API_TIMEOUT: int = 10

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance (singleton)."""
    return Settings()
