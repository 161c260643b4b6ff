"""
Centralized configuration for the Landing Page Grader
All environment variables and settings are defined here
"""

from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Provides centralized configuration with validation and defaults.
    """

    # ======================
    # Deployment
    # ======================
    ENVIRONMENT: str = Field(
        default="development",
        description="Deployment mode (development or production)"
    )
    PUBLIC_BASE_URL: str = Field(
        default="http://localhost:8000",
        description="Public base URL used to build screenshot links"
    )

    # ======================
    # Remote Browser (Browserless)
    # ======================
    BROWSERLESS_TOKEN: Optional[str] = Field(
        default=None,
        description="Browserless API token (absent = local browser only)"
    )
    BROWSERLESS_ENDPOINT: str = Field(
        default="wss://production-sfo.browserless.io",
        description="Browserless WebSocket endpoint"
    )
    BROWSER_PREFER_REMOTE: bool = Field(
        default=False,
        description="Prefer the remote browser even outside production"
    )
    BROWSER_REMOTE_FALLBACK_TO_LOCAL: bool = Field(
        default=False,
        description="Launch a local browser when the remote one stays unreachable"
    )
    BLOCK_CONSENT_MODALS: bool = Field(
        default=True,
        description="Ask the browser to dismiss cookie/consent modals"
    )

    # ======================
    # Browser Configuration
    # ======================
    VIEWPORT_WIDTH: int = Field(default=1920, description="Browser viewport width")
    VIEWPORT_HEIGHT: int = Field(default=1080, description="Browser viewport height")
    BROWSER_LAUNCH_TIMEOUT: int = Field(
        default=20,
        description="Timeout for launching or connecting a browser in seconds"
    )
    BROWSER_CLOSE_TIMEOUT: int = Field(
        default=10,
        description="Timeout for closing browser in seconds"
    )
    BROWSER_MAX_SESSIONS: int = Field(
        default=5,
        description="Max browser sessions open at once (remote quota / memory)"
    )
    SESSION_ACQUIRE_ATTEMPTS: int = Field(
        default=2,
        description="Attempts the pipeline makes to acquire a browser session"
    )

    # ======================
    # Pipeline Configuration
    # ======================
    NAVIGATION_TIMEOUT: int = Field(
        default=45,
        description="Page navigation timeout in seconds"
    )
    ANALYZER_TIMEOUT: int = Field(
        default=60,
        description="Timeout for a single analyzer in seconds"
    )
    ANALYSIS_TIMEOUT: int = Field(
        default=150,
        description="Global timeout for one analysis run in seconds"
    )
    ANALYZER_CONCURRENCY: int = Field(
        default=2,
        description="Max analyzers touching the page at the same time"
    )
    PIPELINE_CAPTURE_SCREENSHOT: bool = Field(
        default=True,
        description="Capture a screenshot from the pipeline's rendered page"
    )

    # ======================
    # Cache Configuration
    # ======================
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )
    CACHE_BACKEND: str = Field(
        default="redis",
        description="Result cache backend (redis or memory)"
    )
    CACHE_TTL: int = Field(
        default=0,
        description="Cache time-to-live in seconds (0 = no expiry)"
    )
    REPORT_TTL: int = Field(
        default=2592000,  # 30 days
        description="Time-to-live for reports stored by analysis id"
    )

    # ======================
    # Speed Analyzer
    # ======================
    PAGESPEED_API_KEY: Optional[str] = Field(
        default=None,
        description="Google PageSpeed Insights API key (optional)"
    )
    PAGESPEED_ENDPOINT: str = Field(
        default="https://www.googleapis.com/pagespeedonline/v5/runPagespeed",
        description="PageSpeed Insights endpoint"
    )
    HTTP_TIMEOUT: int = Field(default=60, description="Outbound HTTP timeout in seconds")

    # ======================
    # Screenshot Configuration
    # ======================
    SCREENSHOT_DIR: str = Field(
        default="./screenshots",
        description="Directory where screenshots are stored"
    )
    MAX_SCREENSHOT_DIMENSION: int = Field(
        default=1800,
        description="Maximum screenshot dimension in pixels"
    )
    SCREENSHOT_QUALITY: int = Field(default=80, description="JPEG quality for screenshots")

    # ======================
    # Email Configuration
    # ======================
    EMAIL_WEBHOOK_URL: Optional[str] = Field(
        default=None,
        description="Endpoint receiving captured email leads"
    )
    EMAIL_TIMEOUT: int = Field(default=10, description="Email delivery timeout in seconds")

    # ======================
    # Celery Configuration
    # ======================
    CELERY_BROKER_URL: Optional[str] = Field(
        default=None,
        description="Celery broker URL (defaults to REDIS_URL if not set)"
    )
    CELERY_RESULT_BACKEND: str = Field(
        default="redis://localhost:6379/1",
        description="Celery result backend URL"
    )
    CELERY_RESULT_EXPIRES: int = Field(
        default=86400,
        description="Time in seconds before task results expire"
    )
    TASK_TIME_LIMIT: int = Field(default=300, description="Hard time limit for tasks in seconds")
    TASK_SOFT_TIME_LIMIT: int = Field(default=240, description="Soft time limit for tasks in seconds")

    # ======================
    # Logging Configuration
    # ======================
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL, defaulting to REDIS_URL if not set"""
        return self.CELERY_BROKER_URL or self.REDIS_URL

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in ("production", "prod")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Allow extra env vars in .env file


# Global settings instance
settings = Settings()


# ======================
# Convenience Functions
# ======================

def get_redis_url() -> str:
    """Get Redis connection URL"""
    return settings.REDIS_URL


def get_celery_broker_url() -> str:
    """Get Celery broker URL"""
    return settings.celery_broker


def get_celery_result_backend() -> str:
    """Get Celery result backend URL"""
    return settings.CELERY_RESULT_BACKEND


def has_remote_browser() -> bool:
    """Check if a remote browser credential is configured"""
    return bool(settings.BROWSERLESS_TOKEN)
