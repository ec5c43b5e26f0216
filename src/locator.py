"""Series location implementing the Strategy Pattern.

The chart library's in-memory layout is undocumented and may shift, so
series are located by an ordered chain of independent strategies:

1. ApexRegistryStrategy - read ``window.Apex._chartInstances`` directly
2. GlobalScanStrategy - scan top-level window bindings for x/y point arrays
3. MarkupPatternStrategy - regex the document for an embedded series literal

The first strategy returning a non-empty list of series, each with at least
one point, wins. A strategy that raises is logged and treated as having
found nothing, so later strategies still run. All in-page scripts are
read-only and return null when the chart library does not exist yet.
"""

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from config.settings import GlobalConfig, get_config
from src.browser import BaseSession
from src.exceptions import SeriesNotFoundError
from src.logger import get_logger
from src.models import RawSeries

log = get_logger(__name__)

APEX_REGISTRY_PROBE = """
(chartId) => {
    try {
        const apex = window.Apex;
        if (!apex || !Array.isArray(apex._chartInstances) || apex._chartInstances.length === 0) {
            return null;
        }
        const instances = apex._chartInstances;
        let inst = null;
        if (chartId) {
            inst = instances.find((candidate) => candidate && (
                candidate.id === chartId
                || candidate.chart?.w?.globals?.chartID === chartId
            )) || null;
        }
        inst = inst || instances[0];
        const series = inst?.chart?.w?.config?.series;
        if (!Array.isArray(series) || series.length === 0) {
            return null;
        }
        return series.map((s) => ({
            name: typeof s?.name === "string" ? s.name : "",
            points: Array.isArray(s?.data) ? s.data : [],
        }));
    } catch (e) {
        return null;
    }
}
"""

GLOBAL_SNAPSHOT_PROBE = """
(maxPoints) => {
    const snapshot = {};
    let keys;
    try {
        keys = Object.keys(window);
    } catch (e) {
        return null;
    }
    for (const key of keys) {
        let value;
        try {
            value = window[key];
        } catch (e) {
            continue;
        }
        if (!Array.isArray(value) || value.length === 0) continue;
        const first = value[0];
        if (first === null || typeof first !== "object" || Array.isArray(first)) continue;
        snapshot[key] = value.slice(0, maxPoints).map((p) => {
            if (p === null || typeof p !== "object") return null;
            const out = {};
            if ("x" in p) out.x = p.x;
            if ("y" in p) out.y = p.y;
            return out;
        });
    }
    return snapshot;
}
"""

SERIES_KEY_PATTERN = re.compile(r"""(?<![\w$])["']?series["']?\s*:\s*\[""")
IDENTIFIER_PATTERN = re.compile(r"([A-Za-z_$][\w$]*)\s*(:)?")


def has_usable_series(series: Sequence[RawSeries] | None) -> bool:
    """Check for a non-empty series list where every series has points."""
    return bool(series) and all(len(s.points) > 0 for s in series)


def coerce_series(raw: Any) -> list[RawSeries] | None:
    """Validate an in-page result into RawSeries, or None if it is not a list."""
    if not isinstance(raw, list):
        return None
    return [RawSeries.model_validate(item) for item in raw if isinstance(item, Mapping)]


def scan_bindings(snapshot: Mapping[str, Any]) -> list[RawSeries]:
    """Collect candidate series from a snapshot of global bindings.

    A binding qualifies when it is a non-empty array whose first element is
    an object exposing both ``x`` and ``y``. The series is named after the
    binding.

    Args:
        snapshot: Read-only mapping of binding name to value.
    """
    found: list[RawSeries] = []
    for name, value in snapshot.items():
        if not isinstance(value, list) or not value:
            continue
        first = value[0]
        if not isinstance(first, Mapping) or "x" not in first or "y" not in first:
            continue
        found.append(RawSeries(name=name, points=value))
    return found


def _balanced_slice(text: str, start: int) -> str | None:
    """Return the bracketed literal opening at ``text[start]``.

    Brackets inside quoted strings are ignored. Returns None when the
    literal is never closed.
    """
    depth = 0
    quote: str | None = None
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if quote is not None:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in ("'", '"', "`"):
            quote = char
        elif char in "[{":
            depth += 1
        elif char in "]}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _string_end(text: str, start: int) -> int:
    """Index of the quote closing the string opened at ``text[start]``, or -1."""
    quote = text[start]
    escaped = False
    for index in range(start + 1, len(text)):
        char = text[index]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == quote:
            return index
    return -1


def _to_double_quoted(body: str, quote: str) -> str:
    out: list[str] = []
    index = 0
    while index < len(body):
        char = body[index]
        if char == "\\" and index + 1 < len(body):
            following = body[index + 1]
            out.append(following if following == quote else char + following)
            index += 2
            continue
        out.append('\\"' if char == '"' else char)
        index += 1
    return '"' + "".join(out) + '"'


def repair_literal(literal: str) -> str:
    """Turn a JavaScript object literal into strict JSON text.

    Double-quoted strings pass through untouched, single-quoted and
    backtick strings become double-quoted, bare keys are quoted and
    trailing commas are dropped. Only text outside strings is rewritten.
    """
    out: list[str] = []
    previous = ""
    index = 0
    while index < len(literal):
        char = literal[index]

        if char in ('"', "'", "`"):
            end = _string_end(literal, index)
            if end < 0:
                out.append(literal[index:])
                break
            if char == '"':
                out.append(literal[index : end + 1])
            else:
                out.append(_to_double_quoted(literal[index + 1 : end], char))
            previous = '"'
            index = end + 1
            continue

        if char in "}]":
            while out and out[-1].isspace():
                out.pop()
            if out and out[-1] == ",":
                out.pop()

        if previous in ("{", ",") and (char.isalpha() or char in "_$"):
            match = IDENTIFIER_PATTERN.match(literal, index)
            if match and match.group(2):
                out.append(f'"{match.group(1)}":')
                previous = ":"
                index = match.end()
                continue

        out.append(char)
        if not char.isspace():
            previous = char
        index += 1
    return "".join(out)


def _load_literal(literal: str) -> Any:
    # strict JSON first, repaired text second
    for candidate in (literal, repair_literal(literal)):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def parse_series_literal(document: str) -> list[RawSeries] | None:
    """Find the first embedded ``series: [...]`` literal that parses.

    Args:
        document: Raw HTML or script text.

    Returns:
        The parsed series, or None if no literal yields usable data.
    """
    for match in SERIES_KEY_PATTERN.finditer(document):
        literal = _balanced_slice(document, match.end() - 1)
        if literal is None:
            continue
        parsed = _load_literal(literal)
        if parsed is None:
            continue
        series = coerce_series(parsed)
        if has_usable_series(series):
            return series
    return None


class LocatorStrategy(ABC):
    """One way of finding chart series in a page session."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs and in SeriesNotFoundError."""
        ...

    @abstractmethod
    async def locate(self, session: BaseSession) -> list[RawSeries] | None:
        """Return the series found, or None when nothing is there (yet)."""
        ...


class ApexRegistryStrategy(LocatorStrategy):
    """Reads series from the chart library's global instance registry."""

    def __init__(self, chart_id: str | None = None) -> None:
        self.chart_id = chart_id

    @property
    def name(self) -> str:
        return "apex_registry"

    async def locate(self, session: BaseSession) -> list[RawSeries] | None:
        raw = await session.evaluate(APEX_REGISTRY_PROBE, self.chart_id)
        return coerce_series(raw)


class GlobalScanStrategy(LocatorStrategy):
    """Scans top-level window bindings for arrays of x/y points."""

    def __init__(self, max_points: int = 10000) -> None:
        self.max_points = max_points

    @property
    def name(self) -> str:
        return "global_scan"

    async def locate(self, session: BaseSession) -> list[RawSeries] | None:
        snapshot = await session.evaluate(GLOBAL_SNAPSHOT_PROBE, self.max_points)
        if not isinstance(snapshot, Mapping):
            return None
        return scan_bindings(snapshot)


class MarkupPatternStrategy(LocatorStrategy):
    """Parses a series literal embedded in the document markup."""

    @property
    def name(self) -> str:
        return "markup_pattern"

    async def locate(self, session: BaseSession) -> list[RawSeries] | None:
        document = await session.content()
        return parse_series_literal(document)


class SeriesLocator:
    """Runs the strategy chain and returns the first usable result.

    Attributes:
        strategies: Strategies in priority order.
    """

    def __init__(
        self,
        strategies: Sequence[LocatorStrategy] | None = None,
        config: GlobalConfig | None = None,
    ) -> None:
        self.config = config or get_config()
        if strategies is None:
            strategies = self.default_chain(self.config)
        self.strategies = list(strategies)

    @staticmethod
    def default_chain(config: GlobalConfig) -> list[LocatorStrategy]:
        """Build the configured chain; fetch-only runs use the markup strategy alone."""
        if config.fetch_only:
            return [MarkupPatternStrategy()]

        chain: list[LocatorStrategy] = [
            ApexRegistryStrategy(config.chart_id),
            GlobalScanStrategy(config.scan_max_points),
        ]
        if config.enable_markup_fallback:
            chain.append(MarkupPatternStrategy())
        return chain

    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self.strategies]

    async def locate(self, session: BaseSession) -> list[RawSeries] | None:
        """Probe the session with each strategy in order.

        Safe to call repeatedly before the chart exists.
        """
        for strategy in self.strategies:
            try:
                result = await strategy.locate(session)
            except Exception as exc:
                log.debug(
                    "Locator strategy failed",
                    strategy=strategy.name,
                    label=session.target.label,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                continue

            if has_usable_series(result):
                log.debug(
                    "Series located",
                    strategy=strategy.name,
                    label=session.target.label,
                    series=len(result),
                )
                return result

        return None

    async def locate_or_raise(self, session: BaseSession) -> list[RawSeries]:
        """Single-shot variant of locate().

        Raises:
            SeriesNotFoundError: If every strategy came back empty.
        """
        result = await self.locate(session)
        if result is None:
            raise SeriesNotFoundError(
                url=session.target.url,
                label=session.target.label,
                strategies=self.strategy_names,
            )
        return result
