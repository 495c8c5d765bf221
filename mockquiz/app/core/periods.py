"""Quota period keys.

A period key labels the accounting window a quiz counter belongs to. When the
stored key differs from the current one the counter is treated as reset.
"""

from datetime import datetime, timezone
from typing import Optional

LIFETIME_PERIOD_KEY = "lifetime"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_period_key(frequency: str, now: Optional[datetime] = None) -> str:
    """Compute the period key for a limit frequency.

    Args:
        frequency: One of "daily", "weekly", "monthly". Any other value maps
            to the lifetime window, which never resets.
        now: The instant to compute the key for. Defaults to the current UTC time.

    Returns:
        The period key string.

    Note:
        Weekly keys combine the calendar year of ``now`` with its ISO week
        number, so the last days of December can be labelled week 1 of the
        ending year (e.g. 2024-12-30 -> "weekly-2024-W1"). Stored counters
        depend on this format.

    Examples:
        >>> get_period_key("daily", datetime(2024, 1, 2))
        'daily-2024-01-02'
        >>> get_period_key("weekly", datetime(2024, 1, 2))
        'weekly-2024-W1'
        >>> get_period_key("monthly", datetime(2024, 1, 2))
        'monthly-2024-01'
    """
    now = now or utc_now()
    year = now.year

    if frequency == "daily":
        return f"daily-{year}-{now.month:02d}-{now.day:02d}"
    if frequency == "weekly":
        week_number = now.isocalendar()[1]
        return f"weekly-{year}-W{week_number}"
    if frequency == "monthly":
        return f"monthly-{year}-{now.month:02d}"
    return LIFETIME_PERIOD_KEY
