"""
MultiFeed Configuration System
=============================

Simple configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

from pathlib import Path
from typing import List, Optional
from enum import Enum

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode, ValidationError
from ..utils.validators import validate_source_list


# Sources the aggregator ships with: plain RSS, a YouTube channel, WordPress, JSON Feed
DEFAULT_SOURCES = [
    "https://hnrss.org/frontpage",
    "https://www.youtube.com/feeds/videos.xml?channel_id=UC_x5XG1OV2P6uZZ5FSM9TQ",
    "https://blog.mozilla.org/feed/",
    "https://daringfireball.net/feeds/json",
]


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class FetchSettings(BaseModel):
    """Upstream fetch configuration."""
    parallel_feeds: int = Field(default=5, ge=1, le=50, description="Concurrent feed fetches")
    request_timeout: int = Field(default=30, ge=1, le=300, description="Per-source timeout in seconds")
    user_agent: str = Field(default="MultiFeed/1.0", description="User-Agent header for upstream requests")


class FeedSettings(BaseModel):
    """Published feed metadata."""
    site_url: str = Field(default="https://example.com", description="Public base URL of this service")
    title: str = Field(default="Multi-Source Feed", min_length=1)
    description: str = Field(default="Unified feed aggregated from multiple sources")
    language: str = Field(default="en")
    author_name: str = Field(default="MultiFeed Bot")
    summary_length: int = Field(default=280, ge=20, le=5000, description="Plain-text summary length")

    @field_validator('site_url')
    @classmethod
    def strip_trailing_slash(cls, v):
        """Links are built as site_url + path."""
        return v.rstrip("/")


class SchedulerSettings(BaseModel):
    """Refresh scheduling configuration."""
    refresh_interval_minutes: int = Field(default=15, ge=1, le=1440, description="Minutes between refresh cycles")
    refresh_on_startup: bool = Field(default=True, description="Run one refresh eagerly at startup")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/multifeed.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class MultiFeedSettings(BaseSettings):
    """Main application settings."""

    # Listening address; PORT is honoured as-is for PaaS deployments
    host: str = Field(default="0.0.0.0", description="Address to listen on")
    port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("PORT", "MULTIFEED_PORT"),
        description="Port to listen on",
    )

    sources: List[str] = Field(default_factory=lambda: list(DEFAULT_SOURCES))

    fetch: FetchSettings = Field(default_factory=FetchSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="MultiFeed", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "MULTIFEED_",
        "populate_by_name": True,
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        if not self.sources:
            errors.append("At least one feed source must be configured")
        else:
            try:
                self.sources = validate_source_list(self.sources)
            except ValidationError as e:
                errors.append(f"Invalid feed source: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value

    def feed_link(self, path: str) -> str:
        """Absolute URL of one of the published endpoints."""
        return f"{self.feed.site_url}/{path.lstrip('/')}"


def load_settings() -> MultiFeedSettings:
    """Load settings from environment variables and defaults.

    Environment variables override Pydantic Field defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        # Precedence: environment, then .env file, then Field defaults
        settings = MultiFeedSettings()
        settings.validate_configuration()
        return settings

    except Exception as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        )


# Global settings instance
_settings: Optional[MultiFeedSettings] = None


def get_settings(reload: bool = False) -> MultiFeedSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
