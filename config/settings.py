"""Global configuration management using pydantic-settings.

This module implements the 12-factor app methodology for configuration,
loading values from environment variables with strict type validation.
The Singleton pattern ensures consistent configuration state across the application.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GlobalConfig(BaseSettings):
    """Centralized configuration with environment variable binding.

    All configuration values are loaded from environment variables,
    with sensible defaults for development. Production deployments
    should override these via .env or environment injection.

    Attributes:
        app_name: Application identifier for logging and telemetry.
        environment: Deployment environment.
        debug: Enable verbose debugging output.
        headless: Run the browser without a visible window.
        log_level: Minimum log level for output filtering.
        log_dir: Directory path for structured JSON log files.
        log_rotation: Log file rotation interval.
        log_retention: Log file retention period.
        ticker: Instrument symbol, stored uppercase.
        exchange: Exchange identifier used in target URLs, stored lowercase.
        base_url: Forecast terminal root URL.
        timeframes: Ordered timeframe labels, one target per label.
        target_urls: Optional per-label URL overrides.
        default_timeframe: Horizon the bare projection page shows without a tf parameter.
        navigation_timeout_ms: Upper bound for reaching the load milestone.
        wait_until: Playwright load milestone awaited on navigation.
        poll_interval_ms: Delay between readiness probe evaluations.
        poll_deadline_ms: Maximum time to wait for chart data per attempt.
        retry_settle_delay_ms: Pause after a recovery reload.
        chart_id: Expected chart identifier in the chart registry.
        scan_max_points: Per-binding point cap for the namespace scan.
        enable_markup_fallback: Include raw markup extraction in the chain.
        fetch_only: Skip the browser and only parse the raw document.
        exclude_historical_series: Drop the historical price series.
        historical_series_label: Reserved label of the historical series.
        webhook_url: Delivery endpoint for the row batch.
        webhook_timeout_sec: Delivery request timeout.
        user_agents: Rotating user-agent strings for stealth.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Metadata
    app_name: str = Field(default="ForecastScraper", description="Application identifier")
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Browser Configuration
    headless: bool = Field(default=True, description="Run browser in headless mode")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_dir: Path = Field(default=Path("logs"), description="Log output directory")
    log_rotation: str = Field(default="1 week", description="Log rotation interval")
    log_retention: str = Field(default="1 month", description="Log retention period")

    # Target Configuration
    ticker: str = Field(default="TSLA", min_length=1, description="Instrument symbol")
    exchange: str = Field(default="nasdaq", min_length=1, description="Exchange identifier")
    base_url: str = Field(
        default="https://terminal.forecaster.biz/",
        description="Forecast terminal base URL",
    )
    timeframes: list[str] = Field(
        default=["1m", "3m"], min_length=1, description="Projection timeframe labels"
    )
    target_urls: dict[str, str] = Field(
        default_factory=dict, description="Per-timeframe URL overrides"
    )
    default_timeframe: str | None = Field(
        default="3m", description="Timeframe served by the bare projection page"
    )

    # Navigation
    navigation_timeout_ms: int = Field(
        default=60000, ge=1000, le=120000, description="Navigation timeout in milliseconds"
    )
    wait_until: Literal["commit", "domcontentloaded", "load", "networkidle"] = Field(
        default="domcontentloaded", description="Navigation load milestone"
    )

    # Hydration Polling
    poll_interval_ms: int = Field(
        default=500, ge=10, le=5000, description="Readiness probe interval"
    )
    poll_deadline_ms: int = Field(
        default=60000, ge=100, le=300000, description="Readiness deadline per attempt"
    )

    # Recovery
    retry_settle_delay_ms: int = Field(
        default=2000, ge=0, le=30000, description="Settle delay after recovery reload"
    )

    # Series Locator
    chart_id: str | None = Field(default=None, description="Expected chart identifier")
    scan_max_points: int = Field(
        default=10000, ge=1, le=100000, description="Point cap per scanned binding"
    )
    enable_markup_fallback: bool = Field(
        default=True, description="Try raw markup extraction after in-page strategies"
    )
    fetch_only: bool = Field(default=False, description="Fetch raw documents without a browser")

    # Normalization
    exclude_historical_series: bool = Field(
        default=True, description="Drop the historical price series from output"
    )
    historical_series_label: str = Field(
        default="price", min_length=1, description="Reserved historical series label"
    )

    # Delivery
    webhook_url: str | None = Field(default=None, description="Batch delivery endpoint")
    webhook_timeout_sec: float = Field(
        default=30.0, ge=1.0, le=300.0, description="Delivery request timeout"
    )

    # Stealth Configuration - User Agent Rotation Pool
    user_agents: list[str] = Field(
        default=[
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
        ],
        min_length=1,
        description="User-agent rotation pool for stealth",
    )

    @field_validator("log_dir", mode="before")
    @classmethod
    def ensure_path(cls, value: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(value) if isinstance(value, str) else value

    @field_validator("base_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Ensure base_url ends with trailing slash for consistent URL joining."""
        return value if value.endswith("/") else f"{value}/"

    @field_validator("ticker")
    @classmethod
    def normalize_ticker(cls, value: str) -> str:
        """Tickers are always handled uppercase."""
        return value.strip().upper()

    @field_validator("exchange")
    @classmethod
    def normalize_exchange(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, value: str | None) -> str | None:
        """Reject endpoints that are not absolute http(s) URLs.

        An empty string is treated as unset so that a blank ``.env`` entry
        surfaces as a missing endpoint at startup instead of a parse error.
        """
        if value is None or not value.strip():
            return None
        parsed = urlparse(value.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"webhook_url must be an absolute http(s) URL, got '{value}'")
        return value.strip()

    def target_url(self, label: str) -> str:
        """Build the projection page URL for one timeframe label."""
        if label in self.target_urls:
            return self.target_urls[label]
        page = f"{self.base_url}instrument/{self.exchange}/{self.ticker.lower()}/projection"
        if label == self.default_timeframe:
            return page
        return f"{page}?tf={label}"


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Retrieve the singleton GlobalConfig instance.

    Uses LRU cache to ensure single instantiation across the application lifecycle.
    This pattern provides thread-safe lazy initialization without explicit locking.

    Returns:
        GlobalConfig: The validated configuration instance.
    """
    return GlobalConfig()
