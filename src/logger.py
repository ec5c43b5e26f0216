"""Logging setup for forecast runs, built on loguru.

Two sinks are installed by configure_logging():
- stderr, colorized, for whoever is watching a scheduled run
- ``forecast_<date>.json`` under LOG_DIR, one JSON object per line

Most pipeline log calls carry the timeframe label of the target they
concern. The file sink lifts it to a top-level ``label`` field so a
single target's retry history can be filtered out of a run's log.
Webhook URLs carry a secret in their path and only ever reach the logs
through redact_url().
"""

import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from loguru import logger

from config.settings import GlobalConfig, get_config
from src.exceptions import LoggingInitializationError

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

LOG_FILE_PATTERN = "forecast_{time:YYYY-MM-DD}.json"


def _json_serializer(record: dict[str, Any]) -> str:
    """Render one record as a JSON line for the file sink.

    Bound extras end up under ``context``; the target label, when
    present, is also copied to the top level.
    """
    extra = {k: v for k, v in record["extra"].items() if k != "serialized"}
    subset = {
        "timestamp": datetime.now(UTC).isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    if "label" in extra:
        subset["label"] = extra["label"]

    if record["exception"] is not None:
        subset["exception"] = {
            "type": record["exception"].type.__name__ if record["exception"].type else None,
            "value": str(record["exception"].value) if record["exception"].value else None,
            "traceback": record["exception"].traceback is not None,
        }

    if extra:
        subset["context"] = extra

    return json.dumps(subset, default=str) + "\n"


def _validate_log_directory(log_dir: Path) -> None:
    """Create LOG_DIR if needed and prove it is writable.

    Raises:
        LoggingInitializationError: If the directory cannot be created or written.
    """
    try:
        log_dir.mkdir(parents=True, exist_ok=True)

        test_file = log_dir / ".write_test"
        test_file.write_text("write_test")
        test_file.unlink()

    except PermissionError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir),
            reason=f"Permission denied: {exc}",
        ) from exc
    except OSError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir),
            reason=f"OS error during directory validation: {exc}",
        ) from exc


def configure_logging(config: GlobalConfig | None = None) -> None:
    """Install the stderr and JSON file sinks for a forecast run.

    Called by main() right after configuration loads and before any page
    is opened. A run whose log directory is unusable does not start.

    Args:
        config: Optional GlobalConfig instance. If None, uses singleton.

    Raises:
        LoggingInitializationError: If log directory validation fails.
    """
    if config is None:
        config = get_config()

    logger.remove()

    _validate_log_directory(config.log_dir)

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=config.log_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )

    logger.add(
        str(config.log_dir / LOG_FILE_PATTERN),
        format="{extra[serialized]}",
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
        serialize=False,  # custom serializer below
        filter=lambda record: record["extra"].update(serialized=_json_serializer(record)) or True,
    )

    logger.info(
        "Logging infrastructure initialized",
        app_name=config.app_name,
        environment=config.environment,
        ticker=config.ticker,
        log_level=config.log_level,
        log_dir=str(config.log_dir),
    )


def get_logger(name: str) -> "logger":
    """Get a logger bound with the module name for log attribution.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("Target scraped", label="1m", rows=42)
    """
    return logger.bind(module=name)


def redact_url(url: str) -> str:
    """Reduce a URL to scheme and host.

    Webhook URLs embed their credentials in the path, so only the origin
    is ever written to logs or exception context.
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return "<invalid-url>"
    return f"{parsed.scheme}://{parsed.netloc}/***"
