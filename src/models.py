"""Pydantic data model for targets, raw chart series and output rows.

RawSeries and RawPoint accept whatever the page hands back and keep the
values untyped; Row and Batch are the strictly validated output side.
"""

from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class Target(BaseModel):
    """One projection page to scrape.

    Attributes:
        url: Page URL.
        label: Timeframe tag copied onto every row from this page.
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)


class RawPoint(BaseModel):
    """A chart point exactly as found in the page, not yet validated.

    Chart libraries store points as ``{"x": ..., "y": ...}`` objects or as
    ``[x, y]`` pairs. Any other shape becomes a point with missing
    coordinates, which the normalizer skips.
    """

    model_config = ConfigDict(frozen=True)

    x: Any = None
    y: Any = None

    @model_validator(mode="before")
    @classmethod
    def coerce_shape(cls, value: Any) -> Any:
        if isinstance(value, RawPoint):
            return value
        if isinstance(value, dict):
            return {"x": value.get("x"), "y": value.get("y")}
        if isinstance(value, (list, tuple)):
            return {
                "x": value[0] if len(value) > 0 else None,
                "y": value[1] if len(value) > 1 else None,
            }
        return {"x": None, "y": None}


class RawSeries(BaseModel):
    """A named chart series as discovered in the page.

    ``data`` is accepted as an alias for ``points`` because that is the key
    the chart library itself uses.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    points: list[RawPoint] = Field(
        default_factory=list,
        validation_alias=AliasChoices("points", "data"),
    )

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("points", mode="before")
    @classmethod
    def coerce_points(cls, value: Any) -> Any:
        return value if isinstance(value, (list, tuple)) else []


class Row(BaseModel):
    """Canonical output row handed to delivery.

    Serialized with camelCase keys (``forecastDate``, ``predictedPrice``...).

    Attributes:
        ticker: Uppercase instrument symbol.
        forecast_date: UTC calendar date of the scrape.
        target_date: UTC calendar date the prediction is for.
        scenario: Trimmed, non-empty series name.
        predicted_price: Price rounded to 2 decimals.
        timeframe: Label of the originating target.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    ticker: str = Field(..., min_length=1)
    forecast_date: date
    target_date: date
    scenario: str = Field(..., min_length=1)
    predicted_price: float
    timeframe: str = Field(..., min_length=1)

    @field_validator("ticker", mode="before")
    @classmethod
    def uppercase_ticker(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError(f"Ticker must be a string, got {type(value).__name__}")
        return value.strip().upper()

    @field_validator("scenario", mode="before")
    @classmethod
    def clean_scenario(cls, value: Any) -> str:
        """Strip whitespace; blank names are rejected."""
        if not isinstance(value, str):
            raise ValueError(f"Scenario must be a string, got {type(value).__name__}")

        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Scenario cannot be empty")

        return cleaned


class Batch(BaseModel):
    """All rows of one run, handed read-only to the delivery sink."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    ticker: str
    forecast_date: date
    scraped_at: datetime
    rows: tuple[Row, ...]

    @classmethod
    def assemble(
        cls,
        ticker: str,
        forecast_date: date,
        scraped_at: datetime,
        rows: Sequence[Row],
    ) -> "Batch":
        return cls(
            ticker=ticker,
            forecast_date=forecast_date,
            scraped_at=scraped_at,
            rows=tuple(rows),
        )

    def to_payload(self) -> dict[str, Any]:
        """Render the JSON-ready delivery payload."""
        return self.model_dump(mode="json", by_alias=True)
