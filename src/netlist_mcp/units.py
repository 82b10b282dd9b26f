from __future__ import annotations

import math
import re

from .errors import MalformedNumber


_NUMBER_RE = re.compile(r"^([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)([a-zA-Z]*)$")

# Multi-letter suffixes first so "meg" wins over the lone "m".
_LONG_SUFFIXES: list[tuple[str, float]] = [
    ("meg", 1e6),
    ("mil", 25.4e-6),
]
_SCALE_LETTERS: dict[str, float] = {
    "f": 1e-15,
    "p": 1e-12,
    "n": 1e-9,
    "u": 1e-6,
    "m": 1e-3,
    "k": 1e3,
    "g": 1e9,
    "t": 1e12,
}
_ENGINEERING_STEPS: list[tuple[float, str]] = [
    (1e12, "T"),
    (1e9, "G"),
    (1e6, "Meg"),
    (1e3, "k"),
    (1.0, ""),
    (1e-3, "m"),
    (1e-6, "u"),
    (1e-9, "n"),
    (1e-12, "p"),
    (1e-15, "f"),
]


def _suffix_scale(suffix: str) -> float:
    lowered = suffix.lower()
    if not lowered:
        return 1.0
    for name, scale in _LONG_SUFFIXES:
        if lowered.startswith(name):
            return scale
    # Letters that are not a scale (V, A, ohm, H...) are unit names and ignored.
    return _SCALE_LETTERS.get(lowered[0], 1.0)


def parse_value(token: str) -> float:
    """Convert a SPICE numeric literal such as ``1.5u`` or ``2Meg`` to a float."""
    text = str(token).strip()
    match = _NUMBER_RE.match(text)
    if not match:
        raise MalformedNumber(text)
    try:
        base = float(match.group(1))
    except ValueError as exc:
        raise MalformedNumber(text) from exc
    return base * _suffix_scale(match.group(2))


def try_parse_value(token: str) -> float | None:
    try:
        return parse_value(token)
    except MalformedNumber:
        return None


def is_number(token: str) -> bool:
    return try_parse_value(token) is not None


def _format_plain(value: float) -> str:
    if math.isfinite(value) and value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(float(value))


def format_value(value: float, *, engineering: bool = False) -> str:
    number = float(value)
    if not engineering or number == 0 or not math.isfinite(number):
        return _format_plain(number)
    magnitude = abs(number)
    for scale, suffix in _ENGINEERING_STEPS:
        if magnitude >= scale * (1 - 1e-12):
            mantissa = float(format(number / scale, ".12g"))
            return f"{_format_plain(mantissa)}{suffix}"
    return _format_plain(number)
