"""
Configuration Management Module

This module handles all application configuration using Pydantic Settings.
Configuration is loaded from environment variables with strong typing and validation.

Design Decisions:
- Use Pydantic Settings for automatic environment variable loading
- Provide sensible defaults for optional settings
- Validate configuration at startup (fail-fast approach)
- Keep the suggestion cap and context size as named options
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values are loaded from environment variables only,
    never hardcoded or logged.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # =========================================================================
    # GitHub Configuration
    # =========================================================================
    github_token: Optional[str] = Field(
        default=None,
        description="GitHub personal access token (repo or pull_requests:write scope)"
    )

    github_api_base: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL"
    )

    github_webhook_secret: Optional[str] = Field(
        default=None,
        description="Webhook secret for signature verification"
    )

    github_rate_limit: int = Field(
        default=5000,
        ge=100,
        description="GitHub API rate limit per hour"
    )

    # =========================================================================
    # Suggestion Blocks
    # =========================================================================
    suggestion_max_lines: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of lines in a rendered suggestion block"
    )

    suggestion_context_lines: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Context lines kept around the changed core by the prefix/suffix trim"
    )

    # =========================================================================
    # Review Configuration
    # =========================================================================
    large_file_threshold: int = Field(
        default=300,
        ge=1,
        description="Changed lines above which a file gets a size warning"
    )

    reviewable_extensions: str = Field(
        default=".js,.jsx",
        description="Comma-separated extensions scanned by the line pattern checks"
    )

    skip_paths: str = Field(
        default="vendor/,node_modules/,dist/,build/",
        description="Comma-separated paths to skip"
    )

    max_pr_files: int = Field(
        default=100,
        ge=1,
        le=3000,
        description="Maximum number of files to process per PR"
    )

    enable_github_comments: bool = Field(
        default=True,
        description="Enable posting reviews to GitHub"
    )

    enable_file_comments: bool = Field(
        default=True,
        description="Enable file-level comments (size, secrets, JSON, ...)"
    )

    # =========================================================================
    # Repository Statistics
    # =========================================================================
    stats_max_prs: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Number of most recent PRs included in repository statistics"
    )

    pr_size_limit: int = Field(
        default=300,
        ge=1,
        description="Changed lines above which a PR violates the size guideline"
    )

    open_too_long_hours: float = Field(
        default=72.0,
        gt=0,
        description="Hours after which an open PR violates the review-time guideline"
    )

    slow_first_review_hours: float = Field(
        default=24.0,
        gt=0,
        description="Hours to first review above which a PR is flagged"
    )

    top_n: int = Field(
        default=10,
        ge=1,
        description="Number of entries kept in the most-changed-files and defect tables"
    )

    # =========================================================================
    # Retry Configuration
    # =========================================================================
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts per GitHub request"
    )

    retry_base_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Base delay between retries in seconds"
    )

    retry_max_delay: float = Field(
        default=30.0,
        ge=0.0,
        description="Maximum delay between retries in seconds"
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================
    host: str = Field(
        default="0.0.0.0",
        description="Host to bind the server"
    )

    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port to bind the server"
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    log_json_format: bool = Field(
        default=True,
        description="Enable JSON logging format"
    )

    log_requests: bool = Field(
        default=False,
        description="Enable request/response logging"
    )

    # =========================================================================
    # Validators
    # =========================================================================
    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("github_api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # =========================================================================
    # Computed Properties
    # =========================================================================
    @property
    def reviewable_extensions_list(self) -> List[str]:
        """Get list of file extensions covered by line pattern checks."""
        return [ext.strip() for ext in self.reviewable_extensions.split(",") if ext.strip()]

    @property
    def skip_paths_list(self) -> List[str]:
        """Get list of paths to skip."""
        return [path.strip() for path in self.skip_paths.split(",") if path.strip()]

    def get_token(self) -> str:
        """
        Get the GitHub token.

        Returns:
            Token content as string

        Raises:
            ValueError: If no token is configured
        """
        if self.github_token:
            return self.github_token.strip()

        raise ValueError(
            "GitHub token not configured. Set GITHUB_TOKEN"
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once,
    which is important for performance and consistency.

    Returns:
        Settings instance
    """
    return Settings()
