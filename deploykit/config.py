"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file and override existing env vars
load_dotenv(override=True)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True

    # API Server (dashboard)
    api_host: str = "127.0.0.1"
    api_port: int = 4000

    # Project
    project_root: str = Field(default=".")
    config_file: str = ".deploy-config.json"

    # Locking
    lock_ttl_minutes: int = 120

    # AWS
    aws_profile: str | None = None
    aws_region: str = "us-east-1"

    # Reconciliation
    placeholder_origin: str = "placeholder.sst.dev"
    stale_distribution_seconds: int = 3600
    zone_recent_minutes: int = 5
    cost_per_distribution_month: float = 2.50

    # Maintenance window
    maintenance_bucket: str | None = None
    maintenance_region: str = "us-east-1"

    # External commands
    deploy_timeout_seconds: int = 1800
    command_timeout_seconds: int = 120

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str = "logs"
    log_file_name: str = "deploykit.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def project_path(self) -> Path:
        """Resolved project root directory."""
        return Path(self.project_root).resolve()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
