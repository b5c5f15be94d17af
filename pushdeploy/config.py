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

    # Object storage
    aws_access_key_id: str = Field(default="")
    aws_secret_access_key: str = Field(default="")
    aws_region: str = "us-east-1"
    s3_bucket_name: str = Field(default="")
    s3_endpoint_url: str | None = None  # S3-compatible stores (MinIO, R2, ...)
    s3_public_read: bool = True

    # Pipeline
    work_root: str = "/tmp/aws-deploy-platform"
    fetch_strategy: Literal["tarball", "clone"] = "tarball"
    github_api_url: str = "https://api.github.com"
    repo_ref: str | None = None  # None = repository default branch
    user_agent: str = "AWS-Deploy-Platform"
    download_timeout: float = 60.0
    npm_command: str = "npm"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def storage_configured(self) -> bool:
        """Whether a bucket and region are set."""
        return bool(self.s3_bucket_name and self.aws_region)

    def public_url(self, deployment_id: str) -> str:
        """Public URL of a deployment's entry page."""
        return (
            f"https://{self.s3_bucket_name}.s3.{self.aws_region}.amazonaws.com"
            f"/{deployment_id}/index.html"
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
