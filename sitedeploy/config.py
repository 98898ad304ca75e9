"""Application configuration using pydantic-settings."""

from functools import lru_cache
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

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Source hosting (GitHub)
    github_token: str = Field(default="", repr=False)
    github_repository: str = ""  # "owner/name"
    github_api_url: str = "https://api.github.com"

    # AWS (credentials come from the default boto3 chain)
    aws_region: str = "us-east-1"

    # Build tool
    workspace_dir: str = "."
    install_command: str = "npm install"
    clean_install_command: str = "npm ci"
    ci_command: str = "npm run ci"
    build_command: str = "npm run build:{environment}"
    command_timeout_seconds: int = 900
    install_max_attempts: int = Field(default=3, ge=1)
    install_backoff_seconds: float = 2.0

    # Publishing
    publish_max_attempts: int = Field(default=3, ge=1)
    publish_backoff_seconds: float = 1.0
    publish_workers: int = Field(default=8, ge=1, le=64)

    # CDN
    cdn_lookup_max_attempts: int = Field(default=3, ge=1)
    cdn_lookup_backoff_seconds: float = 1.0

    # Approval gate. "memory" takes decisions only through the HTTP API
    approval_channel: Literal["memory", "github"] = "memory"
    approval_environments: list[str] = Field(default_factory=lambda: ["production"])
    approval_poll_interval_seconds: float = 10.0
    approval_timeout_seconds: float | None = None  # None waits indefinitely

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str = "logs"
    log_file_name: str = "sitedeploy.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
