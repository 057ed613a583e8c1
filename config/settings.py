"""
Centralized configuration for the Career Funnel service.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # Brand
    brand_name: str = Field(default="Scaler", env="BRAND_NAME")
    sender_name: str = Field(default="Alex from the Career Success Team", env="SENDER_NAME")

    # CRM / sales notifications
    crm_webhook_url: Optional[str] = Field(default=None, env="CRM_WEBHOOK_URL")
    crm_api_key: Optional[str] = Field(default=None, env="CRM_API_KEY")
    crm_timeout_seconds: float = Field(default=10.0, env="CRM_TIMEOUT_SECONDS")

    # Chat widget
    chat_typing_delay_min: float = Field(default=1.0, env="CHAT_TYPING_DELAY_MIN")
    chat_typing_delay_max: float = Field(default=3.0, env="CHAT_TYPING_DELAY_MAX")
    chat_max_sessions: int = Field(default=10_000, env="CHAT_MAX_SESSIONS")
    chat_max_messages: int = Field(default=200, env="CHAT_MAX_MESSAGES")

    # Delegate stubs keep this many recent calls for inspection
    delegate_history_size: int = Field(default=200, env="DELEGATE_HISTORY_SIZE")

    # API
    api_host: str = Field(default="0.0.0.0", env="API_HOST")
    api_port: int = Field(default=8000, env="API_PORT")
    api_title: str = Field(default="Career Funnel API", env="API_TITLE")
    api_version: str = Field(default="1.0.0", env="API_VERSION")
    cors_origins: str = Field(default="*", env="CORS_ORIGINS")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    debug: bool = Field(default=False, env="DEBUG")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def typing_delay_range(self) -> tuple:
        low = max(0.0, self.chat_typing_delay_min)
        return low, max(low, self.chat_typing_delay_max)


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
