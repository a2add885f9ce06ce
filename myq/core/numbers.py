"""Fixed-width number formatting for dashboard cells.

Columns are often only 3-6 characters wide, so every value is squeezed into
its width by choosing a unit scale (``k``, ``M``, ``ms`` ...) and a decimal
precision.  The search order matters: several renderings of the same value
are plausible and this module decides which one is shown.

Public API:
    fit_number(value, width, precision, units) -> str   # best candidate
    fit(value, width, precision, units) -> str          # exactly ``width`` chars
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping

__all__ = [
    "Units",
    "UNITS",
    "fit_number",
    "fit",
    "fit_string",
    "fit_string_left",
    "calculate_diff",
    "calculate_rate",
]


class Units(str, Enum):
    """Unit scale tables selectable from a column definition."""

    NUMBER = "Number"
    MEMORY = "Memory"
    SECOND = "Second"
    MICROSECOND = "Microsecond"
    NANOSECOND = "Nanosecond"
    PICOSECOND = "Picosecond"
    PERCENT = "Percent"


# scale factor -> display suffix
UNITS: Mapping[Units, Mapping[float, str]] = MappingProxyType(
    {
        Units.NUMBER: MappingProxyType(
            {1: "", 1000: "k", 1000000: "m", 1000000000: "g"}
        ),
        Units.MEMORY: MappingProxyType(
            {
                1: "b",
                1024: "K",
                1048576: "M",
                1073741824: "G",
                1099511627776: "T",
            }
        ),
        Units.SECOND: MappingProxyType(
            {1000: "ks", 1: "s", 0.001: "ms", 0.000001: "µs", 0.000000001: "ns"}
        ),
        Units.MICROSECOND: MappingProxyType(
            {1000000000: "ks", 1000000: "s", 1000: "ms", 1: "µs"}
        ),
        Units.NANOSECOND: MappingProxyType(
            {1000000000: "s", 1000000: "ms", 1000: "µs", 1: "ns"}
        ),
        Units.PICOSECOND: MappingProxyType(
            {1000000000000: "s", 1000000000: "ms", 1000000: "µs", 1000: "ns", 1: "ps"}
        ),
        Units.PERCENT: MappingProxyType({1: "%"}),
    }
)


def _render(raw: float, precision: int, unit: str = "") -> str:
    return "%.*f%s" % (precision, raw, unit)


def fit_number(
    value: float, width: int, precision: int, units: Units = Units.NUMBER
) -> str:
    """Pick the rendering of *value* that best uses *width* characters.

    Scales are tried smallest first.  A candidate is considered when it fits
    in ``width + precision`` characters: if it overflows ``width`` the
    precision is chopped one digit at a time; if a scaled (non-base) unit
    leaves spare room the precision is expanded to use it.  A scaled value
    that rounds to zero (``0k``) either borrows a digit (``.4k``) or is
    reported as overflow.  The result may still be wider than *width* when
    nothing smaller exists; :func:`fit` truncates it.

    Returns
    -------
    str
        The chosen rendering, or ``#`` repeated *width* times on overflow.
    """
    table = UNITS[Units(units)]

    for factor in sorted(table):
        unit = table[factor]
        raw = value / factor
        text = _render(raw, precision, unit)
        left = width - len(text)

        if raw >= 0 and (width + precision) - len(text) >= 0:
            if left < 0:
                if precision > 0:
                    return fit_number(value, width, precision - 1, units)
                # larger factors only get wider
                return text
            if left > 1 and factor != 1:
                return _render(raw, left - 1, unit)
            if factor != 1 and raw < 1 and left > 0 and _render(raw, 1) != "1.0":
                # rounded up to 1 at this precision, show the fraction instead
                return _render(raw, precision + left, unit)[1:]
            if factor != 1 and text == "0" + unit:
                if left > 0:
                    return _render(raw, precision + 1, unit)[1:]
                return "#" * width
            return text

    # No scale fits, try the plain number
    text = _render(value, precision)
    if len(text) > width and precision > 0:
        return fit_number(value, width, precision - 1, units)
    if len(text) <= width:
        return text
    return "#" * width


def fit(value: float, width: int, precision: int, units: Units = Units.NUMBER) -> str:
    """Render *value* in exactly *width* characters (right aligned)."""
    return fit_string(fit_number(value, width, precision, units), width)


def fit_string(text: str, width: int) -> str:
    """Truncate to the first *width* characters or left-pad with spaces."""
    if len(text) > width:
        return text[:width]
    return text.rjust(width)


def fit_string_left(text: str, width: int) -> str:
    """Truncate to the first *width* characters or right-pad with spaces."""
    if len(text) > width:
        return text[:width]
    return text.ljust(width)


def calculate_diff(bigger: float, smaller: float) -> float:
    """Difference between two counter readings.

    A current reading below the previous one means the counter was reset or
    rolled over, in which case the current reading is the best answer.
    """
    if bigger < smaller:
        return bigger
    return bigger - smaller


def calculate_rate(bigger: float, smaller: float, seconds: float) -> float:
    """Per-second rate of :func:`calculate_diff` over *seconds*."""
    diff = calculate_diff(bigger, smaller)
    if seconds <= 0:
        return diff
    return diff / seconds
