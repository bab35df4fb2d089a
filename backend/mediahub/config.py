"""
Configuration settings for the Telegram Media Hub backend
"""
import hmac
import logging
from pydantic_settings import BaseSettings
from typing import List, Optional

_config_logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings"""

    # Supabase
    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: str  # Storage uploads only
    STORAGE_BUCKET: str = "media"

    # Direct Postgres connection (asyncpg) for all table reads/writes
    DATABASE_URL: str
    DB_COMMAND_TIMEOUT: float = 30.0

    # Telegram Bot API
    TELEGRAM_BOT_TOKEN: str
    TELEGRAM_WEBHOOK_SECRET: str
    TELEGRAM_API_BASE: str = "https://api.telegram.org"
    PUBLIC_BASE_URL: str = ""  # used to register the webhook URL

    # Glide
    GLIDE_API_TOKEN: str = ""
    GLIDE_API_BASE: str = "https://api.glideapp.io/api/function"

    # Caption analysis (optional LLM)
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_API_BASE: str = "https://api.openai.com/v1"

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Queue processing
    QUEUE_BATCH_SIZE: int = 10
    QUEUE_MAX_RETRIES: int = 3

    # Retry wrapper (seconds)
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_INITIAL_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 5.0

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: str = "http://localhost:3000"

    # Sentry
    SENTRY_DSN: str = ""

    # Environment (normalized to lowercase)
    ENVIRONMENT: str = "development"

    def model_post_init(self, __context) -> None:
        # Normalize ENVIRONMENT to lowercase to avoid case-sensitivity issues
        object.__setattr__(self, "ENVIRONMENT", self.ENVIRONMENT.strip().lower())
        if len(self.TELEGRAM_WEBHOOK_SECRET) < 16:
            _config_logger.warning("TELEGRAM_WEBHOOK_SECRET is shorter than 16 characters (weak secret)")
        if not self.GLIDE_API_TOKEN:
            _config_logger.info("GLIDE_API_TOKEN not set, Glide jobs will use per-config tokens only")

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def webhook_url(self) -> Optional[str]:
        """Public webhook endpoint Telegram should call, if a base URL is configured."""
        if not self.PUBLIC_BASE_URL:
            return None
        return self.PUBLIC_BASE_URL.rstrip("/") + "/api/telegram/webhook"

    def verify_webhook_secret(self, token: Optional[str]) -> bool:
        """Check the X-Telegram-Bot-Api-Secret-Token header (constant-time comparison)."""
        if not token:
            return False
        return hmac.compare_digest(token, self.TELEGRAM_WEBHOOK_SECRET)

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra environment variables


# Global settings instance
settings = Settings()
