from __future__ import annotations

import math
from typing import List, Optional

from . import config
from .models import DailyStats, MilestoneSlot, SlotStatus


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _slot_target(index: int, total: int, unlocked: bool) -> int:
    if index == 0:
        return max(1, round_half_up(total / 3))
    if index == 1:
        return round_half_up(total * 0.66) if unlocked else 3
    return total if unlocked else 6


UNLOCK_THRESHOLDS = (1, 3, 6)


def milestone_slots(total_tasks_today: int, tasks_completed_today: int, gifts_claimed_today: int) -> List[MilestoneSlot]:
    """Derive the three daily gift slots from today's counters alone."""

    slots: List[MilestoneSlot] = []
    for index, threshold in enumerate(UNLOCK_THRESHOLDS):
        unlocked = total_tasks_today >= threshold
        target = _slot_target(index, total_tasks_today, unlocked)

        if index < gifts_claimed_today:
            status = SlotStatus.claimed
        elif unlocked and tasks_completed_today >= target:
            status = SlotStatus.ready
        elif not unlocked:
            status = SlotStatus.locked
        else:
            status = SlotStatus.pending

        percent = min(100.0, tasks_completed_today / target * 100) if target > 0 else 0.0
        slots.append(
            MilestoneSlot(
                index=index,
                status=status,
                target=target,
                unlock_threshold=threshold,
                percent=round(percent, 1),
                needed_to_unlock=max(0, threshold - total_tasks_today),
                tasks_left=max(0, target - tasks_completed_today),
            )
        )
    return slots


def next_milestone_threshold(gifts_claimed_today: int) -> Optional[int]:
    """Completions required for the next claim, or ``None`` once all are taken."""

    if gifts_claimed_today >= config.MAX_MILESTONE_GIFTS:
        return None
    return config.MILESTONE_THRESHOLDS[gifts_claimed_today]


def fresh_daily_stats(today: str) -> DailyStats:
    return DailyStats(date=today)


def fly_reward_for_completion(stats: DailyStats) -> int:
    remaining = config.DAILY_FLIES_LIMIT - stats.flies_earned_today
    return max(0, min(config.FLIES_PER_TASK, remaining))
