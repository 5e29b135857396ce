"""Duration formatting for the timer panel.

Durations of one second or more are shown in seconds and flagged as
``severe``; shorter ones are shown in milliseconds and flagged as
``elevated`` from 500 ms on.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

Formatter = Callable[[float, int], str]

DEFAULT_PRECISION = 4
ELEVATED_MS = 500.0

LEVEL_COLORS = {
    "severe": "red",
    "elevated": "brown",
}


@dataclass(frozen=True)
class FormattedDuration:
    value: float
    unit: str
    level: Optional[str] = None
    precision: int = DEFAULT_PRECISION

    @property
    def text(self) -> str:
        return f"{_trim_number(self.value, self.precision)} {self.unit}"


def _trim_number(value: float, precision: int) -> str:
    text = f"{value:.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in {"", "-0"} else text


def describe_duration(seconds: float, precision: int = DEFAULT_PRECISION, *, elevated_ms: float = ELEVATED_MS) -> FormattedDuration:
    """Split ``seconds`` into a rounded value, a unit and a severity level."""

    if precision < 0:
        raise ValueError("precision must be >= 0")
    seconds = float(seconds)
    if seconds < 0:
        raise ValueError("duration must be >= 0")
    if seconds >= 1:
        return FormattedDuration(round(seconds, precision), "s", "severe", precision)
    millis = seconds * 1000
    level = "elevated" if millis >= elevated_ms else None
    return FormattedDuration(round(millis, precision), "ms", level, precision)


def make_formatter(elevated_ms: float = ELEVATED_MS, markup: bool = True) -> Formatter:
    """Build a formatter with a custom millisecond threshold."""

    def formatter(seconds: float, precision: int = DEFAULT_PRECISION) -> str:
        described = describe_duration(seconds, precision, elevated_ms=elevated_ms)
        color = LEVEL_COLORS.get(described.level or "")
        if not markup or color is None:
            return described.text
        return f'<span style="color: {color};">{described.text}</span>'

    return formatter


def format_duration(seconds: float, precision: int = DEFAULT_PRECISION) -> str:
    """Default HTML formatter used by the panel."""

    return _html_formatter(seconds, precision)


def plain_duration(seconds: float, precision: int = DEFAULT_PRECISION) -> str:
    return describe_duration(seconds, precision).text


_html_formatter = make_formatter()


__all__ = [
    "DEFAULT_PRECISION",
    "FormattedDuration",
    "Formatter",
    "describe_duration",
    "format_duration",
    "make_formatter",
    "plain_duration",
]
