"""
Application configuration management.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

PRODUCTION_ENVIRONMENT = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 4000

    # Downstream build trigger API
    send_request_to: Optional[str] = None  # Overrides the per app trigger URL
    build_api_root_url: str = "https://app.bitrise.io"
    trigger_timeout_seconds: int = 60

    # Size budget of generated build environment values
    env_bytes_limit_kb: int = 256

    # Webhook metrics extraction
    metrics_enabled: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def env_bytes_limit(self) -> int:
        return self.env_bytes_limit_kb * 1024

    @property
    def is_log_only_mode(self) -> bool:
        """Without an explicit target, non production deployments only log trigger calls."""
        return not self.send_request_to and self.environment != PRODUCTION_ENVIRONMENT


@lru_cache()
def get_settings() -> Settings:
    return Settings()
