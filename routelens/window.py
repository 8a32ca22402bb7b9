"""Daily local-time window that gates expensive probes."""

import logging
from datetime import datetime, time

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def parse_window(window: str | None) -> tuple[int, int] | None:
    """Parse ``"HH:MM-HH:MM"`` into (start, end) minutes after midnight.

    Returns None when window is empty or malformed.
    """
    if not window or not window.strip():
        return None

    parts = window.split("-")
    if len(parts) != 2:
        return None

    try:
        start = datetime.strptime(parts[0].strip(), "%H:%M").time()
        end = datetime.strptime(parts[1].strip(), "%H:%M").time()
    except ValueError:
        return None

    return start.hour * 60 + start.minute, end.hour * 60 + end.minute


def in_window(window: str | None, now: datetime | time | None = None) -> bool:
    """Return True if now falls inside the daily window.

    An empty or malformed window fails open (True). The start bound is
    inclusive and the end bound exclusive. When end <= start the window
    runs past midnight into the next day, so ``"23:00-06:00"`` contains
    01:00, and a window whose bounds are equal covers the whole day.

    Args:
        window: Window such as ``"02:00-08:00"``, or None/empty for no restriction
        now: Local time to test; defaults to the current local time
    """
    bounds = parse_window(window)
    if bounds is None:
        if window and window.strip():
            logger.warning("Invalid time window %r, allowing probe", window)
        return True

    if now is None:
        now = datetime.now()
    if isinstance(now, datetime):
        now = now.time()

    start, end = bounds
    current = now.hour * 60 + now.minute + now.second / 60.0

    if end > start:
        return start <= current < end
    # Crossing midnight: the occurrence that began yesterday or the one
    # that begins today
    return current >= start or current < end
