from __future__ import annotations

import enum
import logging
import math
import uuid
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from . import config
from .timeutils import now_utc, parse_iso_to_utc

_logger = logging.getLogger(__name__)

NonNegativeInt = Annotated[int, Field(ge=0)]
HourOfDay = Annotated[int, Field(ge=0, le=23)]


class Rarity(str, enum.Enum):
    common = "common"
    uncommon = "uncommon"
    rare = "rare"
    epic = "epic"
    legendary = "legendary"


class Slot(str, enum.Enum):
    skin = "skin"
    hat = "hat"
    scarf = "scarf"
    glasses = "glasses"
    hand_item = "hand_item"
    container = "container"


class CatalogItem(BaseModel):
    id: str
    name: str
    slot: Slot
    rarity: Rarity
    price: Optional[NonNegativeInt] = None
    icon: str = ""


# ---------------------------------------------------------------------------
# Persisted account record
# ---------------------------------------------------------------------------


def _coerce_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and math.isnan(value):
        return 0
    return max(0, int(value))


class DailyStats(BaseModel):
    date: str = ""
    tasks_completed_today: NonNegativeInt = 0
    milestone_gifts_claimed_today: int = Field(default=0, ge=0, le=config.MAX_MILESTONE_GIFTS)
    completed_task_ids: List[str] = Field(default_factory=list)
    task_count_at_last_gift: NonNegativeInt = 0
    flies_earned_today: NonNegativeInt = 0

    @field_validator("tasks_completed_today", "task_count_at_last_gift", "flies_earned_today", mode="before")
    @classmethod
    def _counter(cls, value: Any) -> int:
        return _coerce_count(value)

    @field_validator("milestone_gifts_claimed_today", mode="before")
    @classmethod
    def _gift_counter(cls, value: Any) -> int:
        return min(config.MAX_MILESTONE_GIFTS, _coerce_count(value))


class RewardCalendarState(BaseModel):
    month: str = ""
    claimed_days: List[Annotated[int, Field(ge=1, le=31)]] = Field(default_factory=list)
    last_claim_date: Optional[date] = None
    streak: NonNegativeInt = 0

    @field_validator("streak", mode="before")
    @classmethod
    def _streak(cls, value: Any) -> int:
        return _coerce_count(value)


class NotificationPrefs(BaseModel):
    enabled: bool = False
    timezone: str = config.DEFAULT_TIMEZONE
    activity_hours: List[HourOfDay] = Field(default_factory=list)
    morning_slot: HourOfDay = config.DEFAULT_MORNING_SLOT
    evening_slot: HourOfDay = config.DEFAULT_EVENING_SLOT
    last_notified_at: Optional[datetime] = None
    device_tokens: List[str] = Field(default_factory=list)

    @field_validator("activity_hours", mode="before")
    @classmethod
    def _hours(cls, value: Any) -> List[int]:
        if not isinstance(value, list):
            return []
        hours = [int(h) for h in value if isinstance(h, int) and not isinstance(h, bool) and 0 <= h <= 23]
        return hours[-config.ACTIVITY_BUFFER_SIZE:]


class UserAccount(BaseModel):
    """Durable per-user record.

    Validators normalize whatever the store hands back so consumers never
    need to second-guess missing or corrupt fields.
    """

    id: str
    name: str = ""
    created_at: datetime = Field(default_factory=now_utc)
    premium_until: Optional[datetime] = None
    balance: NonNegativeInt = 0
    inventory: Dict[str, int] = Field(default_factory=dict)
    equipped: Dict[str, Optional[str]] = Field(default_factory=dict)
    unseen_item_ids: List[str] = Field(default_factory=list)
    hunger: int = config.MAX_HUNGER_MS
    last_hunger_update: Optional[datetime] = None
    stolen_flies: NonNegativeInt = 0
    daily_stats: DailyStats = Field(default_factory=DailyStats)
    reward_calendar: RewardCalendarState = Field(default_factory=RewardCalendarState)
    notification_prefs: NotificationPrefs = Field(default_factory=NotificationPrefs)
    revision: NonNegativeInt = 0

    @field_validator("balance", "stolen_flies", "revision", mode="before")
    @classmethod
    def _counter(cls, value: Any) -> int:
        return _coerce_count(value)

    @field_validator("hunger", mode="before")
    @classmethod
    def _hunger(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value) or math.isinf(value):
            _logger.warning("Stored hunger %r is invalid, treating as full", value)
            return config.MAX_HUNGER_MS
        return int(value)

    @field_validator("last_hunger_update", mode="before")
    @classmethod
    def _last_update(cls, value: Any) -> Optional[datetime]:
        if value is None or isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return parse_iso_to_utc(value)
            except ValueError:
                pass
        _logger.warning("Stored lastHungerUpdate %r is invalid, treating as now", value)
        return None

    @field_validator("inventory", mode="before")
    @classmethod
    def _inventory(cls, value: Any) -> Dict[str, int]:
        if not isinstance(value, dict):
            return {}
        return {str(key): _coerce_count(count) for key, count in value.items() if _coerce_count(count) > 0}

    @field_validator("equipped", mode="before")
    @classmethod
    def _equipped(cls, value: Any) -> Dict[str, Optional[str]]:
        return value if isinstance(value, dict) else {}

    @field_validator("unseen_item_ids", mode="before")
    @classmethod
    def _unseen(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return list(dict.fromkeys(str(item) for item in value))

    @field_validator("daily_stats", "reward_calendar", "notification_prefs", mode="before")
    @classmethod
    def _nested(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, BaseModel)) else {}

    def is_premium(self, now: datetime) -> bool:
        return self.premium_until is not None and self.premium_until > now


class AccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    timezone: str = config.DEFAULT_TIMEZONE


def new_account_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class HungerStatus(BaseModel):
    hunger: int
    stolen_flies: int
    max_hunger: int = config.MAX_HUNGER_MS
    penalty_applied: int = 0
    balance: int


class GrantSummary(BaseModel):
    flies: int = 0
    items: List[str] = Field(default_factory=list)


class InventorySnapshot(BaseModel):
    balance: int
    inventory: Dict[str, int]
    equipped: Dict[str, Optional[str]]
    unseen_item_ids: List[str]


class SellResult(BaseModel):
    item_id: str
    sold: int
    refund: int
    balance: int


class CompletionResult(BaseModel):
    counted: bool
    tasks_completed_today: int
    flies_earned: int = 0
    hunger: int
    balance: int


class MilestoneClaimResult(BaseModel):
    claimed_today: int
    rewards: GrantSummary


class TradeUpResult(BaseModel):
    reward: CatalogItem
    consumed: List[str]


class GiftOpenResult(BaseModel):
    gift_item_id: str
    prize: CatalogItem


class SlotStatus(str, enum.Enum):
    claimed = "CLAIMED"
    ready = "READY"
    locked = "LOCKED"
    pending = "PENDING"


class MilestoneSlot(BaseModel):
    index: int
    status: SlotStatus
    target: int
    unlock_threshold: int
    percent: float
    needed_to_unlock: int
    tasks_left: int


class ProgressSnapshot(BaseModel):
    date: str
    tasks_completed_today: int
    total_tasks_today: int
    milestone_gifts_claimed_today: int
    slots: List[MilestoneSlot]


class RewardType(str, enum.Enum):
    flies = "FLIES"
    item = "ITEM"
    box = "BOX"


class RewardGrant(BaseModel):
    type: RewardType
    amount: int = 0
    item_id: Optional[str] = None


class DailyRewardDef(BaseModel):
    day: int
    free: RewardGrant
    premium: RewardGrant


class CalendarStatus(BaseModel):
    month: str
    today: int
    claimed_days: List[int]
    streak: int
    last_claim_date: Optional[date] = None
    is_premium: bool
    can_claim_today: bool
    reward: Optional[DailyRewardDef] = None


class CalendarClaimResult(BaseModel):
    day: int
    rewards: GrantSummary
    calendar: RewardCalendarState


class SlotUpdate(BaseModel):
    morning_slot: int
    evening_slot: int


class ReminderOutcome(BaseModel):
    account_id: str
    sent: bool
    reason: Optional[str] = None
    pruned_tokens: int = 0


class SweepReport(BaseModel):
    processed: int
    sent: int
    budget_exhausted: bool = False
    results: List[ReminderOutcome] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class PurchaseRequest(BaseModel):
    item_id: str
    quantity: int = Field(default=1, ge=1)


class SellRequest(BaseModel):
    item_id: str
    quantity: int = Field(default=1, ge=1)


class TradeUpRequest(BaseModel):
    item_ids: List[str]


class OpenGiftRequest(BaseModel):
    gift_item_id: str


class EquipRequest(BaseModel):
    slot: Slot
    item_id: Optional[str] = None


class MarkSeenRequest(BaseModel):
    item_ids: List[str]


class CompleteTaskRequest(BaseModel):
    task_id: str = Field(min_length=1)
    timezone: Optional[str] = None


class ClaimGiftRequest(BaseModel):
    timezone: Optional[str] = None


class DailyClaimRequest(BaseModel):
    day: int
    timezone: Optional[str] = None


class DeviceRegistration(BaseModel):
    token: str = Field(min_length=1)
    timezone: Optional[str] = None


class ActivityPing(BaseModel):
    timezone: Optional[str] = None
    hour: Optional[HourOfDay] = None


class NotificationToggle(BaseModel):
    enabled: bool


class PremiumUpdate(BaseModel):
    premium_until: Optional[datetime] = None
