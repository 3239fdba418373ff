from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, List

from .errors import NoRewardDefined
from .models import DailyRewardDef, RewardCalendarState, RewardGrant, RewardType


def _build_schedule() -> Dict[int, DailyRewardDef]:
    schedule: Dict[int, DailyRewardDef] = {}
    for day in range(1, 32):
        if day % 30 == 0:
            free = RewardGrant(type=RewardType.box, item_id="box_gold")
            premium = RewardGrant(type=RewardType.box, item_id="box_diamond")
        elif day % 5 == 0:
            free = RewardGrant(type=RewardType.box, item_id="box_silver")
            premium = RewardGrant(type=RewardType.box, item_id="box_gold")
        else:
            free = RewardGrant(type=RewardType.flies, amount=50 + day * 5)
            premium = RewardGrant(type=RewardType.flies, amount=150 + day * 10)
            if day == 3:
                free = RewardGrant(type=RewardType.item, item_id="scarf_red")
            if day == 7:
                premium = RewardGrant(type=RewardType.item, item_id="glasses_patch")
            if day == 14:
                premium = RewardGrant(type=RewardType.item, item_id="hat_pirate")
            if day == 21:
                premium = RewardGrant(type=RewardType.item, item_id="skin_blue")
        schedule[day] = DailyRewardDef(day=day, free=free, premium=premium)
    return schedule


REWARD_SCHEDULE: Dict[int, DailyRewardDef] = _build_schedule()


def reward_for_day(day: int) -> DailyRewardDef:
    reward = REWARD_SCHEDULE.get(day)
    if reward is None:
        raise NoRewardDefined(f"No reward found for day {day}", day=day)
    return reward


def grants_for(reward: DailyRewardDef, is_premium: bool) -> List[RewardGrant]:
    grants = [reward.free]
    if is_premium:
        grants.append(reward.premium)
    return grants


def fresh_calendar_state(month: str) -> RewardCalendarState:
    return RewardCalendarState(month=month)


def next_streak(state: RewardCalendarState, today: date) -> int:
    """Consecutive-day streak after claiming ``today``."""

    if state.last_claim_date is not None and state.last_claim_date == today - timedelta(days=1):
        return state.streak + 1
    return 1
