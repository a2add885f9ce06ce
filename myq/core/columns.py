"""Column kinds for status views.

Every column is a pydantic model selected by its ``type`` field, so a view
definition with an unknown kind fails when it is loaded rather than when it
is rendered.  Columns read the :class:`~myq.core.cache.MetricCache` and return
lines of exactly ``width`` characters; data problems (missing keys, zero
denominators) turn into a ``-`` cell, never an exception.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from myq.core.cache import MetricCache
from myq.core.numbers import (
    Units,
    calculate_diff,
    calculate_rate,
    fit,
    fit_string,
)
from myq.core.source_key import SourceKey

MISSING = "-"


class BaseCol(BaseModel):
    """Fields and behaviour shared by every column.

    Subclasses implement :meth:`get_data`; everything else has a default.

    - name: header text.
    - description: shown by ``describe``.
    - width: cell width in characters (``length`` is accepted too).
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    description: str = ""
    width: int = Field(0, ge=0, validation_alias=AliasChoices("width", "length"))

    def get_width(self) -> int:
        return self.width

    def short_help(self) -> str:
        return f"{self.name}: {self.description}"

    def detailed_help(self) -> List[str]:
        return [self.short_help()]

    def required_metrics(self) -> List[SourceKey]:
        return []

    def domains(self) -> List[str]:
        return sorted({key.domain for key in self.required_metrics()})

    def get_header(self, cache: MetricCache) -> List[str]:
        return [fit_string(self.name, self.get_width())]

    def get_blank(self) -> str:
        return " " * self.get_width()

    @abstractmethod
    def get_data(self, cache: MetricCache) -> List[str]:
        """Lines rendered for the current generation of *cache*."""

    def _missing(self) -> List[str]:
        return [fit_string(MISSING, self.get_width())]


class NumCol(BaseCol):
    """A column that renders a number through the unit formatter."""

    units: Units = Units.NUMBER
    precision: int = Field(0, ge=0)

    def fit_value(self, value: Optional[float]) -> List[str]:
        if value is None:
            return self._missing()
        return [fit(value, self.width, self.precision, self.units)]


# ----------------------------------------------------------------------
# Single key columns
# ----------------------------------------------------------------------


class Gauge(NumCol):
    """Current value of one reading."""

    type: Literal["Gauge"]
    key: SourceKey

    def required_metrics(self) -> List[SourceKey]:
        return [self.key]

    def get_data(self, cache: MetricCache) -> List[str]:
        mv = cache.get_metric(self.key.domain, self.key.metric)
        return self.fit_value(mv.value if mv is not None else None)


class Rate(NumCol):
    """Per-second change of a counter between the two generations."""

    type: Literal["Rate"]
    key: SourceKey

    def required_metrics(self) -> List[SourceKey]:
        return [self.key]

    def get_data(self, cache: MetricCache) -> List[str]:
        mv = cache.get_metric(self.key.domain, self.key.metric)
        if mv is None:
            return self._missing()
        prev = cache.get_prev_value(self.key.domain, self.key.metric)
        return self.fit_value(calculate_rate(mv.value, prev, cache.seconds_diff()))


class Diff(NumCol):
    """Change of a counter between the two generations."""

    type: Literal["Diff"]
    key: SourceKey

    def required_metrics(self) -> List[SourceKey]:
        return [self.key]

    def get_data(self, cache: MetricCache) -> List[str]:
        mv = cache.get_metric(self.key.domain, self.key.metric)
        if mv is None:
            return self._missing()
        prev = cache.get_prev_value(self.key.domain, self.key.metric)
        return self.fit_value(calculate_diff(mv.value, prev))


class Switch(BaseCol):
    """Maps the integer value of a reading through ``cases``."""

    type: Literal["Switch"]
    key: SourceKey
    cases: Dict[str, str] = Field(default_factory=dict)

    @field_validator("cases", mode="before")
    @classmethod
    def _stringify_cases(cls, value: Any) -> Any:
        # YAML reads `1: Sync` with an integer key
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value

    def required_metrics(self) -> List[SourceKey]:
        return [self.key]

    def get_data(self, cache: MetricCache) -> List[str]:
        mv = cache.get_metric(self.key.domain, self.key.metric)
        text = "%.0f" % mv.value if mv is not None else MISSING
        text = self.cases.get(text, text)
        return [fit_string(text, self.width)]


class String(BaseCol):
    """A reading shown as text, cut from the front or from the end."""

    type: Literal["String"]
    key: SourceKey
    fromend: bool = False

    def required_metrics(self) -> List[SourceKey]:
        return [self.key]

    def get_data(self, cache: MetricCache) -> List[str]:
        mv = cache.get_metric(self.key.domain, self.key.metric)
        text = "%.0f" % mv.value if mv is not None else MISSING
        if len(text) > self.width and self.fromend:
            text = text[len(text) - self.width :]
        return [fit_string(text, self.width)]


class Duration(BaseCol):
    """A seconds reading rendered as a compact duration such as ``2d5h``."""

    type: Literal["Duration"]
    key: SourceKey

    def required_metrics(self) -> List[SourceKey]:
        return [self.key]

    def get_data(self, cache: MetricCache) -> List[str]:
        mv = cache.get_metric(self.key.domain, self.key.metric)
        if mv is None:
            return self._missing()
        return [fit_string(format_duration(mv.value, self.width), self.width)]


# ----------------------------------------------------------------------
# Two key columns
# ----------------------------------------------------------------------


class Percent(NumCol):
    """``numerator / denominator * 100`` on the current generation."""

    type: Literal["Percent"]
    numerator: SourceKey
    denominator: SourceKey

    def required_metrics(self) -> List[SourceKey]:
        return [self.numerator, self.denominator]

    def get_data(self, cache: MetricCache) -> List[str]:
        num = cache.get_metric(self.numerator.domain, self.numerator.metric)
        denom = cache.get_metric(self.denominator.domain, self.denominator.metric)
        if num is None or denom is None or denom.value == 0:
            return self._missing()
        return self.fit_value(num.value / denom.value * 100)


class Subtract(NumCol):
    """``bigger - smaller`` on the current generation."""

    type: Literal["Subtract"]
    bigger: SourceKey
    smaller: SourceKey

    def required_metrics(self) -> List[SourceKey]:
        return [self.bigger, self.smaller]

    def get_data(self, cache: MetricCache) -> List[str]:
        big = cache.get_metric(self.bigger.domain, self.bigger.metric)
        small = cache.get_metric(self.smaller.domain, self.smaller.metric)
        if big is None or small is None:
            return self._missing()
        return self.fit_value(big.value - small.value)


class SubtractRate(NumCol):
    """Per-second change of ``bigger - smaller`` between generations."""

    type: Literal["SubtractRate"]
    bigger: SourceKey
    smaller: SourceKey

    def required_metrics(self) -> List[SourceKey]:
        return [self.bigger, self.smaller]

    def get_data(self, cache: MetricCache) -> List[str]:
        big = cache.get_metric(self.bigger.domain, self.bigger.metric)
        small = cache.get_metric(self.smaller.domain, self.smaller.metric)
        if big is None or small is None:
            return self._missing()
        prev = cache.get_prev_value(
            self.bigger.domain, self.bigger.metric
        ) - cache.get_prev_value(self.smaller.domain, self.smaller.metric)
        return self.fit_value(
            calculate_rate(big.value - small.value, prev, cache.seconds_diff())
        )


# ----------------------------------------------------------------------
# Multi key columns
# ----------------------------------------------------------------------


class ExpandingCol(NumCol):
    """Base for columns whose keys may be globs such as ``status/com_*``.

    Expansions are remembered per key once they find something; a key that
    matched nothing is expanded again on the next render, since counters
    only show up once the server exercises them.
    """

    keys: List[SourceKey] = Field(min_length=1)
    _expanded: Dict[str, List[SourceKey]] = PrivateAttr(default_factory=dict)

    def required_metrics(self) -> List[SourceKey]:
        return list(self.keys)

    def expand(self, cache: MetricCache) -> List[SourceKey]:
        result: List[SourceKey] = []
        seen = set()
        for key in self.keys:
            expanded = self._expanded.get(str(key))
            if not expanded:
                expanded = _expand_key(key, cache)
                if expanded:
                    self._expanded[str(key)] = expanded
            for sk in expanded:
                if str(sk) not in seen:
                    seen.add(str(sk))
                    result.append(sk)
        return result


def _expand_key(key: SourceKey, cache: MetricCache) -> List[SourceKey]:
    if key.is_pattern:
        return [
            SourceKey(domain=key.domain, metric=mv.name)
            for mv in cache.find_metrics(key.domain, key.metric)
        ]
    if cache.get_metric(key.domain, key.metric) is not None:
        return [key]
    return []


class RateSum(ExpandingCol):
    """Rate of the sum of every expanded key."""

    type: Literal["RateSum"]

    def get_data(self, cache: MetricCache) -> List[str]:
        keys = self.expand(cache)
        if not keys:
            return self._missing()
        cur = sum(cache.get_value(k.domain, k.metric) for k in keys)
        prev = sum(cache.get_prev_value(k.domain, k.metric) for k in keys)
        return self.fit_value(calculate_rate(cur, prev, cache.seconds_diff()))


class SortedExpandedCounts(ExpandingCol):
    """Breakdown of which counters moved, largest change first.

    The first line is the total change, printed even when nothing moved;
    each following line is one distinct change value and the names that
    moved by exactly that much, e.g.::

        1.2k total
         900 com_select
         150 com_insert com_update

    The count is ``width`` characters; the names follow it unbounded.
    """

    type: Literal["SortedExpandedCounts"]

    def get_data(self, cache: MetricCache) -> List[str]:
        keys = self.expand(cache)
        if not keys:
            return []

        diffs: Dict[float, List[str]] = {}
        total = 0.0
        for key in keys:
            mv = cache.get_metric(key.domain, key.metric)
            if mv is None:
                continue
            diff = calculate_diff(mv.value, cache.get_prev_value(key.domain, key.metric))
            if diff <= 0:
                continue
            total += diff
            diffs.setdefault(diff, []).append(mv.name)

        lines = [f"{self.fit_value(total)[0]} total"]
        ordered: List[Tuple[float, List[str]]] = sorted(diffs.items(), reverse=True)
        for diff, names in ordered:
            lines.append(f"{self.fit_value(diff)[0]} {' '.join(names)}")
        return lines


# ----------------------------------------------------------------------
# Duration formatting
# ----------------------------------------------------------------------

_DURATION_UNITS = (("w", 604800), ("d", 86400), ("h", 3600), ("m", 60), ("s", 1))


def _split_duration(total: int) -> List[Tuple[int, str, int]]:
    parts = []
    for unit, size in _DURATION_UNITS:
        value, total = divmod(total, size)
        if value:
            parts.append((value, unit, size))
    return parts


def _compact(total: int, max_units: int) -> str:
    parts = _split_duration(total)
    if len(parts) > max_units:
        # round half up at the smallest unit kept
        size = parts[max_units - 1][2]
        total = (total + size // 2) // size * size
        parts = _split_duration(total)
    return "".join(f"{value}{unit}" for value, unit, _ in parts[:max_units])


def format_duration(seconds: float, width: int) -> str:
    """Render *seconds* as a compact duration that fits *width* if possible.

    Sub-second values use a single ``ns``/``µs``/``ms`` unit.  Longer values
    use up to three of ``w d h m s``, dropping the least significant ones
    until the text fits.
    """
    if seconds == 0:
        return "0s"
    if seconds < 0:
        return "-" + format_duration(-seconds, width)
    if seconds < 1:
        if seconds < 1e-6:
            return "%.0fns" % (seconds * 1e9)
        if seconds < 1e-3:
            return "%.0fµs" % (seconds * 1e6)
        return "%.0fms" % (seconds * 1e3)

    total = int(seconds)
    for max_units in (3, 2, 1):
        text = _compact(total, max_units)
        if len(text) <= width:
            return text

    value, unit, _ = _split_duration(total)[0]
    if value >= 1000000:
        text = "%.0fm%s" % (value / 1000000, unit)
    elif value >= 1000:
        text = "%.0fk%s" % (value / 1000, unit)
    else:
        text = f"{value}{unit}"
    if len(text) <= width:
        return text
    exponent = len(str(value)) - 1
    return "%.0fe%d%s" % (value / 10**exponent, exponent, unit)


__all__ = [
    "BaseCol",
    "NumCol",
    "ExpandingCol",
    "Gauge",
    "Rate",
    "Diff",
    "Percent",
    "RateSum",
    "Subtract",
    "SubtractRate",
    "Switch",
    "String",
    "Duration",
    "SortedExpandedCounts",
    "LEAF_COLUMNS",
    "format_duration",
]

LEAF_COLUMNS = (
    Gauge,
    Rate,
    Diff,
    Percent,
    RateSum,
    Subtract,
    SubtractRate,
    Switch,
    String,
    Duration,
    SortedExpandedCounts,
)
