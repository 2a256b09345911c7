"""Notification throttling for low disk space alerts."""

import math


def percentage_points(ratio: float) -> int:
    """Whole percentage points of a ratio, rounded down (0.0923 -> 9)."""
    return math.floor(ratio * 100)


def should_alert(current: float, threshold: float, previous: float) -> bool:
    """Decide whether the current free-space ratio warrants a new alert.

    Nothing is sent while free space meets the threshold (equality counts as
    met). Below the threshold an alert fires only when free space has dropped
    by at least one whole percentage point since the previous reading, so a
    sustained low-space condition produces one alert per point lost.

    Args:
        current: Free-space ratio observed this cycle
        threshold: Ratio below which space is considered low
        previous: Last successfully observed ratio (1.0 before the first)

    Returns:
        True if a notification should be sent now
    """
    if current >= threshold:
        return False
    return percentage_points(current) < percentage_points(previous)
