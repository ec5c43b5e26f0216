"""Forecast scraper core source package.

This package contains the business logic components of the extraction pipeline:
- browser: Playwright page sessions, one isolated context per target
- fetcher: fetch-only sessions over httpx, no script execution
- poller: hydration polling until chart data appears
- locator: ordered chain of series location strategies
- normalizer: raw series to canonical rows
- recovery: per-target state machine with one reload-and-retry
- scraper: run-level aggregation across targets
- delivery: webhook delivery of the batch
- models: pydantic data model
- logger: structured JSON logging configuration
- exceptions: custom exception hierarchy
"""

__version__ = "1.0.0"
