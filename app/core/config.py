from datetime import timedelta
from functools import lru_cache
import os
from typing import List, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False
    project_name: str = "SupportSignal Admin API"
    environment: str = "development"

    # Raw CORS origins string - read from env
    cors_origins_raw: Optional[str] = Field(
        default=None,
        alias="CORS_ORIGINS"
    )

    @computed_field
    @property
    def backend_cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from environment variable (comma-separated string)."""
        raw = self.cors_origins_raw
        if not raw:
            raw = os.environ.get("CORS_ORIGINS") or os.environ.get("BACKEND_CORS_ORIGINS") or ""

        if not raw or not raw.strip():
            return []

        origins = []
        for origin in raw.split(","):
            origin = origin.strip()
            if origin:
                # Normalize protocol to lowercase (Https -> https, Http -> http)
                if origin.lower().startswith("https://"):
                    origin = "https://" + origin[8:]
                elif origin.lower().startswith("http://"):
                    origin = "http://" + origin[7:]
                origins.append(origin)
        return origins

    database_url: str  # Required - no default, must be set in .env

    # Impersonation limits
    impersonation_session_minutes: int = 30
    impersonation_max_concurrent_sessions: int = 3
    impersonation_token_bytes: int = 32
    impersonation_correlation_bytes: int = 16
    impersonation_cleanup_interval_seconds: int = 300  # 5 minutes
    impersonation_search_default_limit: int = 20
    impersonation_search_max_limit: int = 100

    # Rate limiting (slowapi)
    rate_limit_enabled: bool = True
    impersonation_rate_limit: str = "20/minute"
    rate_limit_storage_uri: str = Field(default="memory://", alias="REDIS_URL")

    @property
    def impersonation_session_duration(self) -> timedelta:
        return timedelta(minutes=self.impersonation_session_minutes)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
