from __future__ import annotations

import logging
import random
import time
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from . import catalog, config, economy, hunger, progression, reminders, rewards, storage
from .errors import (
    AccountNotFound,
    AlreadyClaimed,
    GiftLimitReached,
    InsufficientFunds,
    InsufficientInventory,
    InvalidPushToken,
    InvalidTradeSet,
    MilestoneNotReached,
    NotOwned,
    PreconditionFailed,
    PushDeliveryError,
    SlotMismatch,
    StorageError,
    ValidationError,
    WrongDay,
)
from .models import (
    AccountCreate,
    CalendarClaimResult,
    CalendarStatus,
    CompletionResult,
    DailyStats,
    GiftOpenResult,
    HungerStatus,
    InventorySnapshot,
    MilestoneClaimResult,
    NotificationPrefs,
    ProgressSnapshot,
    ReminderOutcome,
    RewardCalendarState,
    RewardGrant,
    RewardType,
    SellResult,
    Slot,
    SlotUpdate,
    SweepReport,
    TradeUpResult,
    UserAccount,
    new_account_id,
)
from .push import PushClient, default_client
from .tasks import StoredTaskSource, TaskSource, due_count, incomplete_count
from .timeutils import date_key, ensure_utc, local_date, local_hour, month_key, now_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")
Update = Dict[str, Dict[str, Any]]

_system_random = random.SystemRandom()


def _now() -> datetime:
    return now_utc()


def _load_account(account_id: str) -> UserAccount:
    raw = storage.find_account(str(account_id))
    if raw is None:
        raise AccountNotFound(account_id)
    return UserAccount.model_validate(raw)


def _write(account_id: str, update: Update, match: Optional[Dict[str, Any]] = None) -> bool:
    """Conditional write; ``False`` means the precondition did not hold."""

    result = storage.update_account(str(account_id), update, match)
    if not result.found:
        raise AccountNotFound(account_id)
    return result.modified


def _compare_and_swap(account_id: str, compute: Callable[[UserAccount], Tuple[Optional[Update], T]]) -> T:
    """Read, compute, and write back only if nobody else wrote in between.

    ``compute`` returns the update to persist (``None`` to skip the write)
    and the value handed back to the caller.
    """

    for attempt in range(1, config.CAS_ATTEMPTS + 1):
        account = _load_account(account_id)
        update, result = compute(account)
        if not update:
            return result
        if _write(account_id, update, {"revision": account.revision}):
            return result
        logger.warning("Revision conflict on account %s (attempt %s/%s)", account_id, attempt, config.CAS_ATTEMPTS)
    raise StorageError("Account is busy, try again", account_id=str(account_id))


def _reject_past(stored: str, requested: str) -> None:
    if stored > requested:
        raise WrongDay(f"{requested} is already over for this account", stored=stored, requested=requested)


def _roll_daily_stats(account_id: str, today: date) -> DailyStats:
    """Move the day's counters forward to ``today``; they never go back."""

    key = date_key(today)
    fresh = progression.fresh_daily_stats(key).model_dump(mode="json")
    if _write(account_id, {"$set": {"daily_stats": fresh}}, {"daily_stats.date": {"$lt": key}}):
        logger.debug("Daily stats for %s reset to %s", account_id, key)
    stats = _load_account(account_id).daily_stats
    _reject_past(stats.date, key)
    return stats


def _roll_calendar(account_id: str, today: date) -> UserAccount:
    month = month_key(today)
    state = rewards.fresh_calendar_state(month).model_dump(mode="json")
    _write(account_id, {"$set": {"reward_calendar": state}}, {"reward_calendar.month": {"$lt": month}})
    account = _load_account(account_id)
    _reject_past(account.reward_calendar.month, month)
    return account


def local_today(account_id: str, timezone: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """The calendar day the user is living in, from ``timezone`` or their saved zone."""

    if timezone is None:
        timezone = _load_account(account_id).notification_prefs.timezone
    return local_date(timezone, now or _now())


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


def create_account(payload: AccountCreate, now: Optional[datetime] = None) -> UserAccount:
    now = now or _now()
    account = UserAccount(
        id=new_account_id(),
        name=payload.name.strip(),
        created_at=now,
        hunger=config.MAX_HUNGER_MS,
        last_hunger_update=now,
        notification_prefs=NotificationPrefs(timezone=payload.timezone),
    )
    storage.insert_account(account.model_dump(mode="json"))
    logger.info("Created account %s", account.id)
    return account


def get_account(account_id: str) -> UserAccount:
    return _load_account(account_id)


def set_premium_until(account_id: str, premium_until: Optional[datetime]) -> UserAccount:
    value = ensure_utc(premium_until).isoformat() if premium_until else None
    _write(account_id, {"$set": {"premium_until": value}})
    return _load_account(account_id)


# ---------------------------------------------------------------------------
# Hunger
# ---------------------------------------------------------------------------


def settle_hunger(account_id: str, now: Optional[datetime] = None) -> HungerStatus:
    now = now or _now()

    def compute(account: UserAccount) -> Tuple[Optional[Update], HungerStatus]:
        settled, taken = hunger.settle(account, now)
        status = hunger.status_for(settled, taken)
        if settled == account:
            return None, status
        return {"$set": hunger.settled_fields(settled)}, status

    status = _compare_and_swap(account_id, compute)
    if status.penalty_applied:
        logger.info("Frog of %s ate %s flies while starving", account_id, status.penalty_applied)
    return status


def get_hunger_status(account_id: str, now: Optional[datetime] = None) -> HungerStatus:
    """Settled hunger for display. Falls back to an unpersisted view under contention."""

    now = now or _now()
    try:
        return settle_hunger(account_id, now)
    except StorageError:
        logger.warning("Could not persist hunger for %s, serving computed view", account_id)
        settled, _ = hunger.settle(_load_account(account_id), now)
        return hunger.status_for(settled)


def acknowledge_hunger(account_id: str) -> HungerStatus:
    _write(account_id, {"$set": {"stolen_flies": 0}})
    return hunger.status_for(_load_account(account_id))


# ---------------------------------------------------------------------------
# Wardrobe economy
# ---------------------------------------------------------------------------


def _snapshot(account: UserAccount) -> InventorySnapshot:
    return InventorySnapshot(
        balance=account.balance,
        inventory=dict(account.inventory),
        equipped=dict(account.equipped),
        unseen_item_ids=list(account.unseen_item_ids),
    )


def _cleanup_item(account_id: str, item_id: str) -> None:
    """Drop an inventory entry that reached zero, with its unseen marker."""

    _write(account_id, economy.cleanup_update(item_id), economy.cleanup_match(item_id))


def purchase(account_id: str, item_id: str, quantity: int = 1) -> InventorySnapshot:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", quantity=quantity)
    item = catalog.get_item(item_id)
    cost = economy.purchase_cost(item, quantity)
    update = economy.merge_updates({"$inc": {"balance": -cost}}, economy.item_grant_update(item.id, quantity))

    if not _write(account_id, update, {"balance": {"$gte": cost}}):
        raise InsufficientFunds(cost, _load_account(account_id).balance)

    logger.info("Account %s bought %s x%s for %s flies", account_id, item.id, quantity, cost)
    return _snapshot(_load_account(account_id))


def sell(account_id: str, item_id: str, quantity: int = 1) -> SellResult:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", quantity=quantity)
    item = catalog.get_item(item_id)
    refund = economy.sell_value(item, quantity)
    path = economy.inventory_path(item.id)

    if not _write(account_id, {"$inc": {path: -quantity, "balance": refund}}, {path: {"$gte": quantity}}):
        owned = _load_account(account_id).inventory.get(item.id, 0)
        raise InsufficientInventory(item.id, quantity, owned)

    _cleanup_item(account_id, item.id)
    logger.info("Account %s sold %s x%s for %s flies", account_id, item.id, quantity, refund)
    balance = _load_account(account_id).balance
    return SellResult(item_id=item.id, sold=quantity, refund=refund, balance=balance)


def trade_up(account_id: str, item_ids: Sequence[str], rng: Optional[random.Random] = None) -> TradeUpResult:
    """Exchange ten same-rarity items for one random item a tier higher."""

    rng = rng or _system_random
    account = _load_account(account_id)
    counts, rarity = economy.validate_trade_set(list(item_ids), account.inventory)
    reward = economy.pick_trade_up_reward(rarity, rng)

    deductions = {economy.inventory_path(item_id): -count for item_id, count in counts.items()}
    update = economy.merge_updates({"$inc": deductions}, economy.item_grant_update(reward.id))
    match = {economy.inventory_path(item_id): {"$gte": count} for item_id, count in counts.items()}

    if not _write(account_id, update, match):
        raise InvalidTradeSet("Trade items are no longer in your inventory")

    for item_id in counts:
        _cleanup_item(account_id, item_id)
    logger.info("Account %s traded %s %s items for %s", account_id, len(item_ids), rarity.value, reward.id)
    return TradeUpResult(reward=reward, consumed=list(item_ids))


def open_gift(account_id: str, gift_item_id: str, rng: Optional[random.Random] = None) -> GiftOpenResult:
    rng = rng or _system_random
    gift = catalog.get_item(gift_item_id)
    if not catalog.is_gift(gift):
        raise ValidationError(f"{gift.name} is not a gift", item_id=gift.id)
    prize = economy.pick_gift_reward(rng)

    path = economy.inventory_path(gift.id)
    update = economy.merge_updates({"$inc": {path: -1}}, economy.item_grant_update(prize.id))
    if not _write(account_id, update, {path: {"$gte": 1}}):
        raise InsufficientInventory(gift.id, 1, 0)

    _cleanup_item(account_id, gift.id)
    logger.info("Account %s opened %s and won %s (%s)", account_id, gift.id, prize.id, prize.rarity.value)
    return GiftOpenResult(gift_item_id=gift.id, prize=prize)


def equip(account_id: str, slot: Slot, item_id: Optional[str]) -> InventorySnapshot:
    try:
        slot = Slot(slot)
    except ValueError as err:
        raise ValidationError(f"Unknown slot {slot}", slot=str(slot)) from err
    path = f"equipped.{slot.value}"
    if item_id is None:
        _write(account_id, {"$set": {path: None}})
        return _snapshot(_load_account(account_id))

    item = catalog.get_item(item_id)
    if slot == Slot.container or item.slot != slot:
        raise SlotMismatch(f"{item.name} cannot be worn as {slot.value}", item_id=item.id, slot=slot.value)
    if not _write(account_id, {"$set": {path: item.id}}, {economy.inventory_path(item.id): {"$gte": 1}}):
        raise NotOwned(f"You do not own {item.name}", item_id=item.id)
    return _snapshot(_load_account(account_id))


def get_inventory(account_id: str) -> InventorySnapshot:
    """Inventory view; equips pointing at items no longer owned are cleared."""

    account = _load_account(account_id)
    stale = [
        (slot, item_id)
        for slot, item_id in account.equipped.items()
        if item_id is not None and account.inventory.get(item_id, 0) <= 0
    ]
    for slot, item_id in stale:
        _write(
            account_id,
            {"$set": {f"equipped.{slot}": None}},
            {f"equipped.{slot}": item_id, economy.inventory_path(item_id): {"$in": [None, 0]}},
        )
    if stale:
        account = _load_account(account_id)
    return _snapshot(account)


def mark_items_seen(account_id: str, item_ids: Sequence[str]) -> InventorySnapshot:
    _write(account_id, {"$pull": {"unseen_item_ids": {"$in": list(item_ids)}}})
    return _snapshot(_load_account(account_id))


# ---------------------------------------------------------------------------
# Daily progression
# ---------------------------------------------------------------------------


def record_task_completion(
    account_id: str,
    task_id: str,
    today: date,
    now: Optional[datetime] = None,
) -> CompletionResult:
    """Count a completed task once per day: feeds the frog and pays flies."""

    now = now or _now()
    key = date_key(today)

    def compute(account: UserAccount) -> Tuple[Optional[Update], CompletionResult]:
        _reject_past(account.daily_stats.date, key)
        stats = account.daily_stats if account.daily_stats.date == key else progression.fresh_daily_stats(key)
        if task_id in stats.completed_task_ids:
            result = CompletionResult(
                counted=False,
                tasks_completed_today=stats.tasks_completed_today,
                hunger=account.hunger,
                balance=account.balance,
            )
            return None, result

        settled, _ = hunger.settle(account, now)
        fed = hunger.feed(settled, config.TASK_HUNGER_REWARD_MS)
        flies = progression.fly_reward_for_completion(stats)
        fed.balance += flies
        stats = DailyStats(
            date=key,
            tasks_completed_today=stats.tasks_completed_today + 1,
            milestone_gifts_claimed_today=stats.milestone_gifts_claimed_today,
            completed_task_ids=[*stats.completed_task_ids, task_id],
            task_count_at_last_gift=stats.task_count_at_last_gift,
            flies_earned_today=stats.flies_earned_today + flies,
        )
        update = {"$set": {**hunger.settled_fields(fed), "daily_stats": stats.model_dump(mode="json")}}
        result = CompletionResult(
            counted=True,
            tasks_completed_today=stats.tasks_completed_today,
            flies_earned=flies,
            hunger=fed.hunger,
            balance=fed.balance,
        )
        return update, result

    return _compare_and_swap(account_id, compute)


def get_milestone_status(account_id: str, today: date, task_source: Optional[TaskSource] = None) -> ProgressSnapshot:
    task_source = task_source or StoredTaskSource()
    stats = _roll_daily_stats(account_id, today)
    total = max(due_count(task_source.due_items(account_id, today)), stats.tasks_completed_today)
    return ProgressSnapshot(
        date=stats.date,
        tasks_completed_today=stats.tasks_completed_today,
        total_tasks_today=total,
        milestone_gifts_claimed_today=stats.milestone_gifts_claimed_today,
        slots=progression.milestone_slots(total, stats.tasks_completed_today, stats.milestone_gifts_claimed_today),
    )


def _milestone_threshold(stats: DailyStats) -> int:
    threshold = progression.next_milestone_threshold(stats.milestone_gifts_claimed_today)
    if threshold is None:
        raise GiftLimitReached(
            f"Daily gift limit reached ({config.MAX_MILESTONE_GIFTS}/{config.MAX_MILESTONE_GIFTS})",
            limit=config.MAX_MILESTONE_GIFTS,
        )
    if stats.tasks_completed_today < threshold:
        raise MilestoneNotReached(threshold, stats.tasks_completed_today)
    return threshold


def claim_milestone_gift(account_id: str, today: date) -> MilestoneClaimResult:
    key = date_key(today)
    stats = _roll_daily_stats(account_id, today)
    threshold = _milestone_threshold(stats)

    grant, summary = economy.grant_update(
        [RewardGrant(type=RewardType.box, item_id=config.MILESTONE_GIFT_ITEM_ID)]
    )
    update = economy.merge_updates(
        grant,
        {
            "$inc": {"daily_stats.milestone_gifts_claimed_today": 1},
            "$set": {"daily_stats.task_count_at_last_gift": stats.tasks_completed_today},
        },
    )
    match = {
        "daily_stats.date": key,
        "daily_stats.milestone_gifts_claimed_today": stats.milestone_gifts_claimed_today,
        "daily_stats.tasks_completed_today": {"$gte": threshold},
    }
    if not _write(account_id, update, match):
        # Someone claimed in between; report against the fresh counters.
        _milestone_threshold(_load_account(account_id).daily_stats)
        raise PreconditionFailed("Gift claim raced with another request, try again")

    claimed = stats.milestone_gifts_claimed_today + 1
    logger.info("Account %s claimed milestone gift %s/%s", account_id, claimed, config.MAX_MILESTONE_GIFTS)
    return MilestoneClaimResult(claimed_today=claimed, rewards=summary)


# ---------------------------------------------------------------------------
# Daily reward calendar
# ---------------------------------------------------------------------------


def _check_calendar_claim(state: RewardCalendarState, day: int, today: date) -> None:
    if day in state.claimed_days:
        raise AlreadyClaimed("Reward already claimed today", day=day)
    if state.last_claim_date is not None and state.last_claim_date > today:
        raise WrongDay(
            f"A later day ({state.last_claim_date.isoformat()}) was already claimed",
            requested=day,
            last_claim_date=state.last_claim_date.isoformat(),
        )


def get_daily_calendar_status(account_id: str, today: date, now: Optional[datetime] = None) -> CalendarStatus:
    now = now or _now()
    account = _roll_calendar(account_id, today)
    state = account.reward_calendar
    behind = state.last_claim_date is not None and state.last_claim_date > today
    return CalendarStatus(
        month=state.month,
        today=today.day,
        claimed_days=sorted(state.claimed_days),
        streak=state.streak,
        last_claim_date=state.last_claim_date,
        is_premium=account.is_premium(now),
        can_claim_today=today.day not in state.claimed_days and not behind,
        reward=rewards.REWARD_SCHEDULE.get(today.day),
    )


def claim_daily_calendar_reward(
    account_id: str,
    day: int,
    today: date,
    now: Optional[datetime] = None,
) -> CalendarClaimResult:
    now = now or _now()
    reward = rewards.reward_for_day(day)
    if day != today.day:
        raise WrongDay(f"You can only claim today's reward (day {today.day})", requested=day, today=today.day)

    month = month_key(today)
    account = _roll_calendar(account_id, today)
    state = account.reward_calendar
    _check_calendar_claim(state, day, today)

    grant, summary = economy.grant_update(rewards.grants_for(reward, account.is_premium(now)))
    update = economy.merge_updates(
        grant,
        {
            "$push": {"reward_calendar.claimed_days": day},
            "$set": {
                "reward_calendar.last_claim_date": today.isoformat(),
                "reward_calendar.streak": rewards.next_streak(state, today),
            },
        },
    )
    last_claim = state.last_claim_date.isoformat() if state.last_claim_date else None
    match = {
        "reward_calendar.month": month,
        "reward_calendar.claimed_days": {"$ne": day},
        "reward_calendar.last_claim_date": last_claim,
    }
    if not _write(account_id, update, match):
        _check_calendar_claim(_roll_calendar(account_id, today).reward_calendar, day, today)
        raise PreconditionFailed("Reward claim raced with another request, try again")

    logger.info("Account %s claimed calendar day %s (%s)", account_id, day, month)
    calendar = _load_account(account_id).reward_calendar
    return CalendarClaimResult(day=day, rewards=summary, calendar=calendar)



# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def record_activity_hour(account_id: str, hour: int, timezone: Optional[str] = None) -> SlotUpdate:
    if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
        raise ValidationError("Hour must be between 0 and 23", hour=hour)

    def compute(account: UserAccount) -> Tuple[Update, SlotUpdate]:
        hours = reminders.append_activity(account.notification_prefs.activity_hours, hour)
        morning, evening = reminders.compute_slots(hours)
        fields: Dict[str, Any] = {
            "notification_prefs.activity_hours": hours,
            "notification_prefs.morning_slot": morning,
            "notification_prefs.evening_slot": evening,
        }
        if timezone:
            fields["notification_prefs.timezone"] = timezone
        return {"$set": fields}, SlotUpdate(morning_slot=morning, evening_slot=evening)

    return _compare_and_swap(account_id, compute)


def record_activity(account_id: str, timezone: Optional[str] = None, now: Optional[datetime] = None) -> SlotUpdate:
    """Record the current local hour as an activity sample."""

    zone = timezone or _load_account(account_id).notification_prefs.timezone
    return record_activity_hour(account_id, local_hour(zone, now or _now()), timezone)


def register_device(account_id: str, token: str, timezone: Optional[str] = None) -> NotificationPrefs:
    fields: Dict[str, Any] = {"notification_prefs.enabled": True}
    if timezone:
        fields["notification_prefs.timezone"] = timezone
    _write(account_id, {"$set": fields, "$addToSet": {"notification_prefs.device_tokens": token}})
    logger.info("Registered push device for %s", account_id)
    return _load_account(account_id).notification_prefs


def set_notifications_enabled(account_id: str, enabled: bool) -> NotificationPrefs:
    _write(account_id, {"$set": {"notification_prefs.enabled": bool(enabled)}})
    return _load_account(account_id).notification_prefs


def _remind_account(
    raw: Dict[str, Any],
    now: datetime,
    push_client: PushClient,
    task_source: TaskSource,
    rng: random.Random,
) -> ReminderOutcome:
    account = UserAccount.model_validate(raw)
    prefs = account.notification_prefs
    reason = reminders.skip_reason(prefs, now)
    if reason:
        return ReminderOutcome(account_id=account.id, sent=False, reason=reason)

    remaining = incomplete_count(task_source.due_items(account.id, local_date(prefs.timezone, now)))
    if remaining == 0:
        return ReminderOutcome(account_id=account.id, sent=False, reason="no_tasks")

    # Another sweep may have nudged this account since the snapshot was taken.
    stamp = (raw.get("notification_prefs") or {}).get("last_notified_at")
    claim = {"$set": {"notification_prefs.last_notified_at": now.isoformat()}}
    if not _write(account.id, claim, {"notification_prefs.last_notified_at": stamp}):
        return ReminderOutcome(account_id=account.id, sent=False, reason="too_recent")

    body = reminders.pick_message(remaining, rng)
    data = reminders.reminder_payload(remaining)
    invalid: List[str] = []
    delivered = 0
    for token in prefs.device_tokens:
        try:
            push_client.send(token, config.PUSH_TITLE, body, data)
            delivered += 1
        except InvalidPushToken:
            logger.warning("Dropping invalid push token for %s", account.id)
            invalid.append(token)
        except PushDeliveryError as err:
            logger.warning("Push to %s failed: %s", account.id, err)

    if invalid:
        _write(account.id, {"$pull": {"notification_prefs.device_tokens": {"$in": invalid}}})

    return ReminderOutcome(
        account_id=account.id,
        sent=delivered > 0,
        reason=None if delivered else "delivery_failed",
        pruned_tokens=len(invalid),
    )


def run_reminder_sweep(
    now: Optional[datetime] = None,
    *,
    push_client: Optional[PushClient] = None,
    task_source: Optional[TaskSource] = None,
    rng: Optional[random.Random] = None,
    budget_seconds: float = config.SWEEP_BUDGET_SECONDS,
    clock: Callable[[], float] = time.monotonic,
) -> SweepReport:
    """Nudge every opted-in user whose preferred hour is now.

    A failure on one account is logged and recorded; it never stops the
    sweep. Once ``budget_seconds`` have elapsed the remaining accounts are
    left for the next run.
    """

    now = now or _now()
    push_client = push_client or default_client()
    task_source = task_source or StoredTaskSource()
    rng = rng or _system_random

    started = clock()
    results: List[ReminderOutcome] = []
    budget_exhausted = False
    for raw in storage.iter_accounts({"notification_prefs.enabled": True}):
        if clock() - started >= budget_seconds:
            budget_exhausted = True
            logger.warning("Reminder sweep out of time after %s accounts", len(results))
            break
        account_id = str(raw.get("id"))
        try:
            outcome = _remind_account(raw, now, push_client, task_source, rng)
        except Exception:  # one bad account must not stop the sweep
            logger.exception("Reminder for %s failed", account_id)
            outcome = ReminderOutcome(account_id=account_id, sent=False, reason="error")
        results.append(outcome)

    sent = sum(1 for outcome in results if outcome.sent)
    logger.info("Reminder sweep: %s processed, %s sent", len(results), sent)
    return SweepReport(processed=len(results), sent=sent, budget_exhausted=budget_exhausted, results=results)
