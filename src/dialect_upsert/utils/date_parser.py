"""
Pattern-driven temporal parsing utilities.

Values arriving from JSON documents are plain strings; the target column
decides which pattern applies. Every parser raises ``ValueError`` with a
message naming the expected pattern so callers can report the failure
against the offending record.
"""

from datetime import date, datetime, time
from typing import List

SECONDS_DIRECTIVE = "%S"
FRACTION_DIRECTIVE = "%f"


def _format_unparseable_error(value: str, fmt: str) -> str:
    return f"Cannot parse '{value}' with pattern '{fmt}'"


def _candidate_patterns(fmt: str) -> List[str]:
    """Return the pattern plus its fractional-seconds variant, if any."""
    patterns = [fmt]
    if SECONDS_DIRECTIVE in fmt and FRACTION_DIRECTIVE not in fmt:
        patterns.append(
            fmt.replace(SECONDS_DIRECTIVE, f"{SECONDS_DIRECTIVE}.{FRACTION_DIRECTIVE}", 1)
        )
    return patterns


def _strptime(value: str, fmt: str, allow_fraction: bool) -> datetime:
    raw = value.strip()
    patterns = _candidate_patterns(fmt) if allow_fraction else [fmt]
    for pattern in patterns:
        try:
            return datetime.strptime(raw, pattern)
        except ValueError:
            continue
    raise ValueError(_format_unparseable_error(value, fmt))


def parse_date(value: str, fmt: str = "%Y-%m-%d") -> date:
    """
    Parse a DATE value.

    Example:
        >>> parse_date("2024-11-05")
        datetime.date(2024, 11, 5)
    """
    return _strptime(value, fmt, allow_fraction=False).date()


def parse_time(value: str, fmt: str = "%H:%M:%S") -> time:
    """
    Parse a TIME value.

    Example:
        >>> parse_time("08:30:00")
        datetime.time(8, 30)
    """
    return _strptime(value, fmt, allow_fraction=True).time()


def parse_timestamp(value: str, fmt: str = "%Y-%m-%d %H:%M:%S") -> datetime:
    """
    Parse a TIMESTAMP value; a trailing fractional-seconds part is accepted.

    Example:
        >>> parse_timestamp("2024-11-05 08:30:00.250")
        datetime.datetime(2024, 11, 5, 8, 30, 0, 250000)
    """
    return _strptime(value, fmt, allow_fraction=True)


def parse_timestamp_tz(value: str, fmt: str = "%Y-%m-%d %H:%M:%S%z") -> datetime:
    """
    Parse a TIMESTAMP WITH TIME ZONE value.

    The result must carry a UTC offset; a pattern that yields a naive
    datetime is treated as a parse failure.
    """
    parsed = _strptime(value, fmt, allow_fraction=True)
    if parsed.tzinfo is None:
        raise ValueError(f"Value '{value}' has no time zone offset")
    return parsed
