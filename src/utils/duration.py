"""
MooncrestBot - Duration Parsing
===============================

Parses short durations like "30s", "10m", "2h", "1d" or "1w".
"""

import re

from src.core.errors import InvalidArgument


_UNIT_MS = {
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
}

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$", re.IGNORECASE)


def parse_duration(text: str) -> int:
    """
    Parse a duration string into milliseconds.

    Raises:
        InvalidArgument: Format is not <number><s|m|h|d|w> or the value is 0.
    """
    match = _DURATION_RE.match(text or "")
    if not match:
        raise InvalidArgument("Invalid duration. Use a number followed by s, m, h, d or w (e.g. 1h, 2d)")
    value = int(match.group(1))
    if value <= 0:
        raise InvalidArgument("Duration must be greater than zero")
    return value * _UNIT_MS[match.group(2).lower()]


def format_duration(ms: int) -> str:
    """Human form of a millisecond duration, largest unit first."""
    seconds = max(0, ms // 1000)
    parts = []
    for label, size in (("d", 86400), ("h", 3600), ("m", 60), ("s", 1)):
        if seconds >= size:
            parts.append(f"{seconds // size}{label}")
            seconds %= size
    return " ".join(parts) or "0s"
