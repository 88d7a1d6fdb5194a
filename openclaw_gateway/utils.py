"""Utility functions shared by the gateway modules."""

import re
from datetime import datetime, timezone
from typing import Optional

# Matches: \x1b[...m, \033[...m, \u001b[...m, etc.
ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")

# Engine timestamps carry nanoseconds, datetime accepts microseconds
_FRACTION = re.compile(r"\.(\d+)")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text.

    ANSI escape codes are used for terminal coloring and formatting.
    This function removes them to produce clean log output.

    Args:
        text: Text that may contain ANSI escape codes.

    Returns:
        Text with ANSI escape codes removed.
    """
    return ANSI_ESCAPE.sub("", text)


def parse_docker_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as written by the Docker engine.

    Returns None for empty values and for the engine's zero time
    (``0001-01-01T00:00:00Z``), which means "never".
    """
    if not value or value.startswith("0001-01-01"):
        return None
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_now() -> str:
    return utc_now().isoformat()
