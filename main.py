"""Forecast scraper entry point.

This module is the bootstrap and orchestration layer. It contains no
business logic - all functional code resides in /src.

Responsibilities:
    1. Load and validate configuration
    2. Initialize logging infrastructure (fail-fast on error)
    3. Run one extraction cycle over all targets and deliver the batch
    4. Map failures onto process exit codes

Exit codes:
    0   at least one row scraped and the batch delivered
    1   configuration, browser, delivery or unexpected failure
    2   every target failed, nothing was delivered
    130 interrupted

Usage:
    python main.py
"""

import asyncio
import sys
from typing import NoReturn

from loguru import logger

from config.settings import GlobalConfig, get_config
from src.browser import BrowserManager
from src.delivery import WebhookDelivery
from src.exceptions import (
    DeliveryError,
    EmptyBatchError,
    ForecastScraperError,
    LoggingInitializationError,
)
from src.fetcher import MarkupFetcher
from src.logger import configure_logging, redact_url
from src.scraper import ForecastScraper


def _validate_startup_requirements(config: GlobalConfig) -> None:
    """Pre-flight checks before any page is opened.

    Raises:
        SystemExit: If the delivery endpoint is missing.
    """
    if not config.webhook_url:
        logger.critical("Missing delivery endpoint", setting="WEBHOOK_URL")
        sys.exit(1)

    logger.debug(
        "Startup validation complete",
        endpoint=redact_url(config.webhook_url),
        base_url=config.base_url,
        fetch_only=config.fetch_only,
    )


async def _run_pipeline(config: GlobalConfig) -> int:
    """Execute one extraction-and-delivery cycle.

    1. Open the session provider (browser, or HTTP client in fetch-only mode)
    2. Scrape every target with one reload-and-retry each
    3. Fail if no rows at all were produced
    4. Deliver the batch

    Returns:
        Exit code (0 for success).

    Raises:
        EmptyBatchError: If every target failed.
        DeliveryError: If the sink rejects the batch.
    """
    logger.info(
        "Pipeline execution started",
        app_name=config.app_name,
        environment=config.environment,
        ticker=config.ticker,
        timeframes=config.timeframes,
        fetch_only=config.fetch_only,
    )

    provider_factory = MarkupFetcher.create if config.fetch_only else BrowserManager.create

    async with provider_factory(config) as provider:
        logger.info("Session provider initialized", provider=type(provider).__name__)
        scraper = ForecastScraper(provider.open_session, config)
        result = await scraper.extract()

    if not result.rows:
        raise EmptyBatchError(
            targets_attempted=len(result.outcomes),
            failed_labels=result.failed_targets,
        )

    if result.failed_targets:
        logger.warning(
            "Delivering partial batch",
            failed_targets=result.failed_targets,
            total_rows=len(result.rows),
        )

    batch = result.to_batch()
    delivery = WebhookDelivery(config)
    await delivery.deliver(batch)

    logger.info(
        "Pipeline execution completed successfully",
        total_rows=len(batch.rows),
        success_rate=f"{result.success_rate:.1%}",
    )
    return 0


def _handle_fatal_error(exc: Exception) -> NoReturn:
    """Log a fatal error and exit with the matching code."""
    if isinstance(exc, EmptyBatchError):
        logger.critical(
            "No rows were scraped - nothing delivered",
            targets_attempted=exc.targets_attempted,
            failed_targets=exc.failed_labels,
        )
        sys.exit(2)

    if isinstance(exc, DeliveryError):
        logger.critical(
            "Batch delivery failed",
            status_code=exc.status_code,
            message=exc.message,
        )
        sys.exit(1)

    if isinstance(exc, ForecastScraperError):
        logger.critical(
            "Fatal application error",
            error_type=type(exc).__name__,
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    logger.exception("Unexpected fatal error", error=str(exc))
    sys.exit(1)


def main() -> int:
    """Application entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    try:
        config = get_config()
    except Exception as exc:
        # Cannot log yet - print to stderr
        print(f"FATAL: Configuration loading failed: {exc}", file=sys.stderr)
        return 1

    try:
        configure_logging(config)
    except LoggingInitializationError as exc:
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1

    try:
        _validate_startup_requirements(config)
    except SystemExit:
        raise
    except Exception as exc:
        logger.exception("Startup validation failed", error=str(exc))
        return 1

    try:
        return asyncio.run(_run_pipeline(config))
    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user (Ctrl+C)")
        return 130
    except Exception as exc:
        _handle_fatal_error(exc)


if __name__ == "__main__":
    sys.exit(main())
