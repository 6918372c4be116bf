"""
Helper functions for formatting data into human-readable strings.
"""

import json
from datetime import datetime
from typing import Any


def format_duration_ms(milliseconds: int | None) -> str:
    """
    Formats milliseconds into a human-readable string (e.g., '1d 2h 5m').
    """
    if milliseconds is None:
        return "never"
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    s = milliseconds // 1000
    days, remainder = divmod(s, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_timestamp_ms(timestamp: int | None) -> str:
    """Formats an epoch-millisecond timestamp as local 'YYYY-MM-DD HH:MM:SS'."""
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")


def summarize_payload(payload: Any, max_length: int = 60) -> str:
    """Renders a payload as compact JSON, truncated for table display."""
    try:
        text = json.dumps(payload, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        text = repr(payload)
    if len(text) > max_length:
        return text[: max_length - 1] + "…"
    return text
