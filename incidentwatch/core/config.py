"""
IncidentWatch - Configuration Management
Centralized configuration using pydantic-settings.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Blob store (Firebase Storage REST surface)
    storage_host: str = "firebasestorage.googleapis.com"
    storage_bucket: str = "incidentwatch.firebasestorage.app"
    storage_auth_token: Optional[str] = None
    upload_header_prefix: str = "X-Goog-"
    http_timeout_seconds: float = 60.0

    # Document store (Firestore)
    firebase_credentials_path: Optional[str] = None
    firebase_project_id: Optional[str] = None
    reports_collection: str = "reports"

    # Submission
    remote_path_prefix: str = "reports"
    max_description_length: int = 400

    # Synthetic upload progress
    progress_ceiling: float = 0.9
    progress_rate: float = 0.05
    progress_min_step: float = 0.01
    progress_tick_interval_ms: int = 280
    progress_initial: float = 0.02

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def storage_base_url(self) -> str:
        """Base URL of the blob store REST API."""
        return f"https://{self.storage_host}/v0/b"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
