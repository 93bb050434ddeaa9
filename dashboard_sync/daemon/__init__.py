"""
dashboard_sync.daemon - Auto-sync scheduler

Runs provider syncs in the foreground at configurable intervals with
signal handling.
"""

import re


def parse_interval(interval: str | int) -> int:
    """Parse an interval string into seconds.

    Accepts interval strings with units (s, m, h, d) or plain integers.

    Args:
        interval: Interval specification. Examples:
            - "30s" -> 30 seconds
            - "5m" -> 5 minutes (300 seconds)
            - "1h" -> 1 hour (3600 seconds)
            - 3600 -> 3600 seconds (pass-through)

    Returns:
        Interval in seconds as a positive integer.

    Raises:
        ValueError: If the interval format is invalid, uses an unknown unit
            or is not positive.
    """
    if isinstance(interval, bool):
        raise ValueError("Invalid interval type: bool. Expected str or int.")

    if isinstance(interval, int):
        seconds = interval
    elif isinstance(interval, str):
        match = re.match(r"^(\d+)\s*([smhd]?)$", interval.lower().strip())
        if not match:
            raise ValueError(
                f"Invalid interval format: '{interval}'. "
                "Use format like '30s', '5m', '1h', or '1d'."
            )

        multipliers = {
            "": 1,
            "s": 1,
            "m": 60,
            "h": 3600,
            "d": 86400,
        }
        seconds = int(match.group(1)) * multipliers[match.group(2)]
    else:
        raise ValueError(
            f"Invalid interval type: {type(interval).__name__}. Expected str or int."
        )

    if seconds <= 0:
        raise ValueError(f"Interval must be positive, got {interval!r}")
    return seconds


# Imports after parse_interval to avoid circular dependencies
from dashboard_sync.daemon.scheduler import (  # noqa: E402
    AutoSyncScheduler,
    SchedulerStats,
)

__all__ = [
    "parse_interval",
    "AutoSyncScheduler",
    "SchedulerStats",
]
