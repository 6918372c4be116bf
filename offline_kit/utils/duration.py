"""
Helpers for turning TTL values into milliseconds and reading the wall clock.
"""

import re
import time

from offline_kit.exceptions import InvalidDurationError

_DURATION_RE = re.compile(r"^(\d+)(ms|s|m|h|d|w)?$")

_UNIT_MS = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
}


def now_ms() -> int:
    """Returns the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def parse_duration(duration: int | str | None) -> int | None:
    """
    Parses a duration into milliseconds.

    Accepts a non-negative integer (already milliseconds) or a string of the form
    ``<integer><unit>`` where unit is one of ms, s, m, h, d or w. A bare digit
    string is read as milliseconds.

    Args:
        duration: The value to parse. None and empty strings yield None.

    Returns:
        The duration in milliseconds, or None when no duration was given.

    Raises:
        InvalidDurationError: If the value is negative or not in the grammar.
    """
    if duration is None:
        return None
    if isinstance(duration, bool):
        raise InvalidDurationError(f"Invalid duration: {duration!r}")
    if isinstance(duration, int):
        if duration < 0:
            raise InvalidDurationError(f"Duration cannot be negative: {duration}")
        return duration
    if isinstance(duration, str):
        value = duration.strip()
        if not value:
            return None
        match = _DURATION_RE.match(value)
        if match:
            amount, unit = match.groups()
            return int(amount) * _UNIT_MS[unit or "ms"]
    raise InvalidDurationError(
        f"Invalid duration {duration!r}. Use milliseconds or a value like "
        "'500ms', '30s', '5m', '1h', '7d' or '2w'."
    )
