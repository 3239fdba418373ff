"""Tests for activity-driven reminder slots and the reminder sweep."""

from __future__ import annotations

import random
import threading
from datetime import datetime, timedelta, timezone

import pytest

from frogtask import config, reminders, services, storage
from frogtask.errors import AccountNotFound, ValidationError
from frogtask.models import AccountCreate, NotificationPrefs
from frogtask.timeutils import local_hour

from conftest import FakePushClient, FakeTaskSource

MORNING = datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc)


def _opt_in(account_id: str, *tokens: str, **prefs) -> None:
    fields = {f"notification_prefs.{key}": value for key, value in prefs.items()}
    fields["notification_prefs.enabled"] = True
    fields["notification_prefs.device_tokens"] = list(tokens)
    storage.update_account(account_id, {"$set": fields})


# ============================================================================
# Slot computation
# ============================================================================


class TestSlots:
    def test_busiest_hours_win(self) -> None:
        assert reminders.compute_slots([9, 9, 9, 17]) == (9, 17)

    def test_empty_windows_fall_back_to_defaults(self) -> None:
        assert reminders.compute_slots([]) == (config.DEFAULT_MORNING_SLOT, config.DEFAULT_EVENING_SLOT)
        assert reminders.compute_slots([2, 3, 23]) == (9, 18)

    def test_ties_go_to_the_earliest_hour(self) -> None:
        assert reminders.compute_slots([12, 10, 12, 10, 20, 16]) == (10, 16)

    def test_hours_outside_windows_are_ignored(self) -> None:
        assert reminders.compute_slots([7, 7, 7, 14, 14, 22, 11]) == (11, 18)

    def test_ring_buffer_keeps_latest_entries(self) -> None:
        hours = list(range(24)) * 3
        buffer = reminders.append_activity(hours, 5)

        assert len(buffer) == config.ACTIVITY_BUFFER_SIZE
        assert buffer[-1] == 5
        assert buffer[0] == hours[len(hours) + 1 - config.ACTIVITY_BUFFER_SIZE]

    def test_messages_mention_the_count(self) -> None:
        rng = random.Random(3)
        for _ in range(10):
            assert "4 task" in reminders.pick_message(4, rng)
        assert "1 task " in reminders.NOTIFICATION_MESSAGES[0](1)


class TestSkipReason:
    def test_order_of_checks(self) -> None:
        prefs = NotificationPrefs(enabled=False)
        assert reminders.skip_reason(prefs, MORNING) == "disabled"

        prefs = NotificationPrefs(enabled=True)
        assert reminders.skip_reason(prefs, MORNING) == "no_tokens"

        prefs = NotificationPrefs(enabled=True, device_tokens=["t"], morning_slot=10)
        assert reminders.skip_reason(prefs, MORNING) == "not_scheduled_hour"

        prefs = NotificationPrefs(enabled=True, device_tokens=["t"], last_notified_at=MORNING - timedelta(hours=3))
        assert reminders.skip_reason(prefs, MORNING) == "too_recent"

        prefs = NotificationPrefs(enabled=True, device_tokens=["t"], last_notified_at=MORNING - timedelta(hours=4))
        assert reminders.skip_reason(prefs, MORNING) is None

    def test_slot_is_matched_in_local_time(self) -> None:
        prefs = NotificationPrefs(enabled=True, device_tokens=["t"], timezone="Asia/Kolkata", morning_slot=14)
        assert reminders.skip_reason(prefs, MORNING.replace(hour=8, minute=45)) is None

    def test_unknown_zone_degrades_to_utc(self) -> None:
        assert local_hour("Not/AZone", MORNING) == 9


# ============================================================================
# Activity ingestion
# ============================================================================


class TestActivity:
    def test_recording_hours_moves_slots(self, account) -> None:
        for hour in (9, 9, 9, 17):
            update = services.record_activity_hour(account.id, hour, "UTC")

        assert (update.morning_slot, update.evening_slot) == (9, 17)
        prefs = services.get_account(account.id).notification_prefs
        assert prefs.activity_hours == [9, 9, 9, 17]
        assert prefs.evening_slot == 17

    def test_buffer_is_capped_in_storage(self, account) -> None:
        for _ in range(config.ACTIVITY_BUFFER_SIZE + 5):
            services.record_activity_hour(account.id, 12)

        assert len(services.get_account(account.id).notification_prefs.activity_hours) == config.ACTIVITY_BUFFER_SIZE

    def test_local_hour_is_derived_from_timezone(self, account) -> None:
        services.record_activity(account.id, "Asia/Tokyo", MORNING)

        prefs = services.get_account(account.id).notification_prefs
        assert prefs.activity_hours == [18]
        assert prefs.timezone == "Asia/Tokyo"

    @pytest.mark.parametrize("hour", [-1, 24, True])
    def test_invalid_hour(self, account, hour) -> None:
        with pytest.raises(ValidationError):
            services.record_activity_hour(account.id, hour)

    def test_register_device_enables_notifications(self, account) -> None:
        services.register_device(account.id, "tok-1", "Europe/Paris")
        prefs = services.register_device(account.id, "tok-1")

        assert prefs.enabled
        assert prefs.device_tokens == ["tok-1"]
        assert prefs.timezone == "Europe/Paris"
        assert not services.set_notifications_enabled(account.id, False).enabled

    def test_unknown_account(self) -> None:
        with pytest.raises(AccountNotFound):
            services.record_activity_hour("missing", 9)


# ============================================================================
# Sweep
# ============================================================================


class TestSweep:
    def test_sends_to_every_token_and_stamps_time(self, account, push_client, task_source, rng) -> None:
        _opt_in(account.id, "a", "b")

        report = services.run_reminder_sweep(MORNING, push_client=push_client, task_source=task_source, rng=rng)

        assert report.processed == 1
        assert report.sent == 1
        assert [token for token, *_ in push_client.sent] == ["a", "b"]
        _, title, body, data = push_client.sent[0]
        assert title == config.PUSH_TITLE
        assert "3 task" in body
        assert data == {"type": "task_reminder", "uncompleted_count": "3"}
        assert services.get_account(account.id).notification_prefs.last_notified_at == MORNING

    def test_second_sweep_within_gap_is_skipped(self, account, push_client, task_source, rng) -> None:
        _opt_in(account.id, "a", evening_slot=11)
        services.run_reminder_sweep(MORNING, push_client=push_client, task_source=task_source, rng=rng)

        report = services.run_reminder_sweep(
            MORNING + timedelta(hours=2), push_client=push_client, task_source=task_source, rng=rng
        )

        assert report.results[0].reason == "too_recent"
        assert len(push_client.sent) == 1

    def test_no_incomplete_tasks_means_no_push(self, account, push_client, rng) -> None:
        _opt_in(account.id, "a")

        report = services.run_reminder_sweep(MORNING, push_client=push_client, task_source=FakeTaskSource(), rng=rng)

        assert report.results[0].reason == "no_tasks"
        assert push_client.sent == []
        assert services.get_account(account.id).notification_prefs.last_notified_at is None

    def test_disabled_and_off_hour_accounts_are_skipped(self, account, push_client, task_source, rng) -> None:
        other = services.create_account(AccountCreate(name="Croaker"), now=MORNING)
        _opt_in(account.id, "a", morning_slot=8)
        _opt_in(other.id, "b")
        services.set_notifications_enabled(other.id, False)

        report = services.run_reminder_sweep(MORNING, push_client=push_client, task_source=task_source, rng=rng)

        assert report.processed == 1
        assert report.results[0].reason == "not_scheduled_hour"

    def test_invalid_tokens_are_pruned(self, account, task_source, rng) -> None:
        _opt_in(account.id, "good", "dead", "flaky")
        client = FakePushClient(invalid=("dead",), flaky=("flaky",))

        report = services.run_reminder_sweep(MORNING, push_client=client, task_source=task_source, rng=rng)

        assert report.results[0].sent
        assert report.results[0].pruned_tokens == 1
        assert services.get_account(account.id).notification_prefs.device_tokens == ["good", "flaky"]

    def test_one_broken_account_does_not_stop_the_sweep(self, account, push_client, rng) -> None:
        other = services.create_account(AccountCreate(name="Croaker"), now=MORNING)
        _opt_in(account.id, "a")
        _opt_in(other.id, "b")

        class ExplodingSource(FakeTaskSource):
            def due_items(self, account_id, day):
                if account_id == account.id:
                    raise RuntimeError("task store offline")
                return super().due_items(account_id, day)

        report = services.run_reminder_sweep(
            MORNING, push_client=push_client, task_source=ExplodingSource(default=2), rng=rng
        )

        reasons = {result.account_id: result.reason for result in report.results}
        assert reasons[account.id] == "error"
        assert reasons[other.id] is None
        assert [token for token, *_ in push_client.sent] == ["b"]

    def test_budget_stops_early(self, account, push_client, task_source, rng) -> None:
        _opt_in(account.id, "a")
        ticks = iter([0.0, 100.0])

        report = services.run_reminder_sweep(
            MORNING,
            push_client=push_client,
            task_source=task_source,
            rng=rng,
            budget_seconds=50,
            clock=lambda: next(ticks),
        )

        assert report.budget_exhausted
        assert report.processed == 0
        assert push_client.sent == []

    def test_task_source_gets_local_date(self, account, push_client, task_source, rng) -> None:
        _opt_in(account.id, "a", timezone="Pacific/Kiritimati", morning_slot=1)

        services.run_reminder_sweep(MORNING + timedelta(hours=2), push_client=push_client, task_source=task_source, rng=rng)

        assert task_source.calls == [(account.id, MORNING.date() + timedelta(days=1))]

    def test_stamp_written_after_snapshot_wins(self, account, push_client, rng) -> None:
        _opt_in(account.id, "a")

        class InterleavedSource(FakeTaskSource):
            def due_items(self, account_id, day):
                storage.update_account(
                    account_id, {"$set": {"notification_prefs.last_notified_at": MORNING.isoformat()}}
                )
                return super().due_items(account_id, day)

        report = services.run_reminder_sweep(
            MORNING, push_client=push_client, task_source=InterleavedSource(default=2), rng=rng
        )

        assert report.results[0].reason == "too_recent"
        assert push_client.sent == []

    def test_overlapping_sweeps_send_once(self, account, push_client) -> None:
        _opt_in(account.id, "a")
        both_read = threading.Barrier(2, timeout=5)

        class SteppingSource(FakeTaskSource):
            def due_items(self, account_id, day):
                both_read.wait()
                return super().due_items(account_id, day)

        source = SteppingSource(default=2)
        reports = []

        def sweep(seed: int) -> None:
            reports.append(
                services.run_reminder_sweep(
                    MORNING, push_client=push_client, task_source=source, rng=random.Random(seed)
                )
            )

        threads = [threading.Thread(target=sweep, args=(seed,)) for seed in (1, 2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(push_client.sent) == 1
        assert sorted(report.sent for report in reports) == [0, 1]
        assert {report.results[0].reason for report in reports} == {None, "too_recent"}
