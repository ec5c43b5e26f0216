"""Conversion of raw chart series into canonical rows.

Point handling rules:
- x is epoch milliseconds, converted to a UTC calendar date by integer
  day truncation (no timezone offset, the boundary is always UTC midnight)
- y is rounded half-up to 2 decimals on the scaled integer value
- points with a missing or non-numeric coordinate are skipped
- series with a blank name are skipped, as is the historical price series
  when the filter is enabled
"""

import math
from collections.abc import Sequence
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from config.settings import GlobalConfig, get_config
from src.exceptions import EmptyResultError
from src.logger import get_logger
from src.models import RawSeries, Row, Target

log = get_logger(__name__)

MS_PER_DAY = 86_400_000
EPOCH = date(1970, 1, 1)
PRICE_SCALE = 100


def coerce_number(value: Any) -> float | None:
    """Return value as a finite float, or None if it is not numeric.

    Booleans are rejected even though they are ints. Strings are accepted
    when they hold a plain number, since some pages ship string-encoded data.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None

    return number if math.isfinite(number) else None


def to_utc_date(epoch_ms: float) -> date:
    """Convert epoch milliseconds to the UTC calendar date containing it.

    Raises:
        OverflowError: If the value lies outside the representable date range.
    """
    days = math.floor(epoch_ms / MS_PER_DAY)
    return EPOCH + timedelta(days=days)


def round_price(value: float) -> float:
    """Round half-up to 2 decimals on the scaled integer value."""
    return math.floor(value * PRICE_SCALE + 0.5) / PRICE_SCALE


class RowNormalizer:
    """Maps raw series of one target onto canonical rows.

    Attributes:
        config: GlobalConfig with the ticker and the historical-series filter.
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()

    def is_historical(self, name: str) -> bool:
        """Check whether a series name is the reserved historical price label."""
        return name.strip().casefold() == self.config.historical_series_label.strip().casefold()

    def normalize(
        self,
        raw_series: Sequence[RawSeries],
        target: Target,
        forecast_date: date,
    ) -> list[Row]:
        """Produce one row per retained point across all series.

        Args:
            raw_series: Series located on the target page.
            target: Target the series were extracted from.
            forecast_date: UTC date of the run.

        Returns:
            Rows in series order, then point order.

        Raises:
            EmptyResultError: If series were present but no row survived.
        """
        rows: list[Row] = []
        skipped_series = 0
        skipped_points = 0
        total_points = 0

        for series in raw_series:
            total_points += len(series.points)
            scenario = series.name.strip()

            if not scenario:
                skipped_series += 1
                continue

            if self.config.exclude_historical_series and self.is_historical(scenario):
                log.debug(
                    "Historical series excluded",
                    label=target.label,
                    scenario=scenario,
                    points=len(series.points),
                )
                continue

            for point in series.points:
                row = self._build_row(scenario, point.x, point.y, target, forecast_date)
                if row is None:
                    skipped_points += 1
                else:
                    rows.append(row)

        log.debug(
            "Series normalized",
            label=target.label,
            series=len(raw_series),
            rows=len(rows),
            skipped_series=skipped_series,
            skipped_points=skipped_points,
        )

        if raw_series and not rows:
            raise EmptyResultError(
                url=target.url,
                label=target.label,
                series_count=len(raw_series),
                point_count=total_points,
            )

        return rows

    def _build_row(
        self,
        scenario: str,
        x: Any,
        y: Any,
        target: Target,
        forecast_date: date,
    ) -> Row | None:
        x_value = coerce_number(x)
        y_value = coerce_number(y)
        if x_value is None or y_value is None:
            return None

        try:
            target_date = to_utc_date(x_value)
            price = round_price(y_value)
        except (OverflowError, ValueError):
            return None

        try:
            return Row(
                ticker=self.config.ticker,
                forecast_date=forecast_date,
                target_date=target_date,
                scenario=scenario,
                predicted_price=price,
                timeframe=target.label,
            )
        except ValidationError as exc:
            log.warning(
                "Row validation failed",
                label=target.label,
                scenario=scenario,
                errors=exc.error_count(),
            )
            return None
