from __future__ import annotations

import random
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple

from . import config
from .models import NotificationPrefs
from .timeutils import ensure_utc, local_hour


def _plural(count: int, one: str, many: str) -> str:
    return one if count == 1 else many


NOTIFICATION_MESSAGES: Tuple[Callable[[int], str], ...] = (
    lambda n: f"\U0001F438 You have {n} task{_plural(n, '', 's')} left today! Hop to it!",
    lambda n: f"\U0001F438 {n} task{_plural(n, '', 's')} waiting for you! Your frog believes in you!",
    lambda n: f"\U0001F438 Ribbit! {n} task{_plural(n, ' is', 's are')} still on your lily pad!",
    lambda n: f"\U0001F438 Don't forget! {n} task{_plural(n, '', 's')} to go today!",
    lambda n: f"\U0001F438 Your frog is watching... {n} task{_plural(n, '', 's')} left!",
)


def append_activity(hours: Iterable[int], hour: int) -> List[int]:
    """Add ``hour`` to the ring buffer, evicting the oldest entries past capacity."""

    buffer = list(hours)
    buffer.append(hour)
    return buffer[-config.ACTIVITY_BUFFER_SIZE:]


def best_hour_in_range(histogram: Counter, start: int, end: int, fallback: int) -> int:
    best_hour = fallback
    best_count = 0
    for hour in range(start, end + 1):
        count = histogram.get(hour, 0)
        if count > best_count:
            best_count = count
            best_hour = hour
    return best_hour


def compute_slots(activity_hours: Iterable[int]) -> Tuple[int, int]:
    """Busiest morning and evening hours; ties go to the earlier hour."""

    histogram = Counter(activity_hours)
    morning = best_hour_in_range(histogram, *config.MORNING_WINDOW, config.DEFAULT_MORNING_SLOT)
    evening = best_hour_in_range(histogram, *config.EVENING_WINDOW, config.DEFAULT_EVENING_SLOT)
    return morning, evening


def skip_reason(prefs: NotificationPrefs, now: datetime) -> Optional[str]:
    """Why this account should not be nudged right now, if anything."""

    if not prefs.enabled:
        return "disabled"
    if not prefs.device_tokens:
        return "no_tokens"
    hour = local_hour(prefs.timezone, now)
    if hour not in (prefs.morning_slot, prefs.evening_slot):
        return "not_scheduled_hour"
    if prefs.last_notified_at is not None:
        gap = ensure_utc(now) - ensure_utc(prefs.last_notified_at)
        if gap < timedelta(hours=config.MIN_NOTIFICATION_GAP_HOURS):
            return "too_recent"
    return None


def pick_message(count: int, rng: random.Random) -> str:
    return rng.choice(NOTIFICATION_MESSAGES)(count)


def reminder_payload(count: int) -> dict:
    return {"type": "task_reminder", "uncompleted_count": str(count)}
