"""Tests for the monthly daily-reward calendar."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from frogtask import rewards, services, storage
from frogtask.errors import AccountNotFound, AlreadyClaimed, NoRewardDefined, WrongDay
from frogtask.models import RewardCalendarState, RewardType


class TestSchedule:
    def test_every_day_has_both_tiers(self) -> None:
        assert sorted(rewards.REWARD_SCHEDULE) == list(range(1, 32))
        for reward in rewards.REWARD_SCHEDULE.values():
            assert reward.free is not None
            assert reward.premium is not None

    def test_box_days(self) -> None:
        assert rewards.reward_for_day(5).free.item_id == "box_silver"
        assert rewards.reward_for_day(30).premium.item_id == "box_diamond"
        assert rewards.reward_for_day(4).free.type == RewardType.flies
        assert rewards.reward_for_day(4).free.amount == 70

    def test_outside_month_has_no_reward(self) -> None:
        for day in (0, 32, -1):
            with pytest.raises(NoRewardDefined):
                rewards.reward_for_day(day)

    def test_streak_continues_only_from_yesterday(self) -> None:
        today = date(2025, 3, 14)
        yesterday = RewardCalendarState(month="2025-03", last_claim_date=today - timedelta(days=1), streak=4)
        older = RewardCalendarState(month="2025-03", last_claim_date=today - timedelta(days=2), streak=4)

        assert rewards.next_streak(yesterday, today) == 5
        assert rewards.next_streak(older, today) == 1
        assert rewards.next_streak(RewardCalendarState(), today) == 1


class TestClaims:
    def test_claim_today_once(self, account, today, now) -> None:
        """Day 14 pays its free reward once; the repeat is rejected."""
        result = services.claim_daily_calendar_reward(account.id, today.day, today, now)

        assert result.day == 14
        assert result.rewards.flies == 50 + 14 * 5
        assert result.calendar.claimed_days == [14]
        assert result.calendar.streak == 1
        assert result.calendar.last_claim_date == today
        assert services.get_account(account.id).balance == 120

        with pytest.raises(AlreadyClaimed):
            services.claim_daily_calendar_reward(account.id, today.day, today, now)
        assert services.get_account(account.id).balance == 120

    def test_only_today_can_be_claimed(self, account, today, now) -> None:
        with pytest.raises(WrongDay):
            services.claim_daily_calendar_reward(account.id, today.day - 1, today, now)

    def test_day_out_of_range(self, account, today, now) -> None:
        with pytest.raises(NoRewardDefined):
            services.claim_daily_calendar_reward(account.id, 32, today, now)

    def test_premium_gets_both_rewards(self, account, today, now) -> None:
        services.set_premium_until(account.id, now + timedelta(days=30))

        result = services.claim_daily_calendar_reward(account.id, 14, today, now)

        assert result.rewards.flies == 120
        assert result.rewards.items == ["hat_pirate"]
        stored = services.get_account(account.id)
        assert stored.inventory["hat_pirate"] == 1
        assert "hat_pirate" in stored.unseen_item_ids

    def test_expired_premium_is_free_tier(self, account, today, now) -> None:
        services.set_premium_until(account.id, now - timedelta(seconds=1))

        result = services.claim_daily_calendar_reward(account.id, 14, today, now)

        assert result.rewards.items == []

    def test_consecutive_days_build_a_streak(self, account, today, now) -> None:
        services.claim_daily_calendar_reward(account.id, 13, today - timedelta(days=1), now)
        result = services.claim_daily_calendar_reward(account.id, 14, today, now)

        assert result.calendar.streak == 2
        assert result.calendar.claimed_days == [13, 14]

    def test_month_rollover_resets_state(self, account, now) -> None:
        storage.update_account(
            account.id,
            {"$set": {"reward_calendar": {"month": "2025-02", "claimed_days": [1, 2, 28], "streak": 9, "last_claim_date": "2025-02-28"}}},
        )
        first_of_march = date(2025, 3, 1)

        status = services.get_daily_calendar_status(account.id, first_of_march, now)

        assert status.month == "2025-03"
        assert status.claimed_days == []
        assert status.streak == 0
        assert status.can_claim_today

        result = services.claim_daily_calendar_reward(account.id, 1, first_of_march, now)
        assert result.calendar.streak == 1

    def test_status_reflects_claim(self, account, today, now) -> None:
        services.claim_daily_calendar_reward(account.id, 14, today, now)

        status = services.get_daily_calendar_status(account.id, today, now)

        assert status.today == 14
        assert not status.can_claim_today
        assert status.reward.day == 14
        assert status.is_premium is False

    def test_unknown_account(self, today, now) -> None:
        with pytest.raises(AccountNotFound):
            services.claim_daily_calendar_reward("missing", today.day, today, now)
        with pytest.raises(AccountNotFound):
            services.get_daily_calendar_status("missing", today, now)


class TestClaimOrder:
    """A later day, once claimed, closes every earlier one."""

    def test_month_end_cannot_be_claimed_twice_across_rollover(self, account, now) -> None:
        march_31, april_1 = date(2025, 3, 31), date(2025, 4, 1)
        services.claim_daily_calendar_reward(account.id, 31, march_31, now)
        services.claim_daily_calendar_reward(account.id, 1, april_1, now)
        balance = services.get_account(account.id).balance

        with pytest.raises(WrongDay):
            services.claim_daily_calendar_reward(account.id, 31, march_31, now)
        with pytest.raises(WrongDay):
            services.get_daily_calendar_status(account.id, march_31, now)

        stored = services.get_account(account.id)
        assert stored.balance == balance
        assert stored.reward_calendar.month == "2025-04"
        assert stored.reward_calendar.claimed_days == [1]

    def test_earlier_day_in_same_month_is_closed(self, account, today, now) -> None:
        tomorrow = today + timedelta(days=1)
        services.claim_daily_calendar_reward(account.id, tomorrow.day, tomorrow, now)

        with pytest.raises(WrongDay):
            services.claim_daily_calendar_reward(account.id, today.day, today, now)

        status = services.get_daily_calendar_status(account.id, today, now)
        assert not status.can_claim_today
        assert services.get_account(account.id).reward_calendar.claimed_days == [tomorrow.day]
