import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.environ.get("FROGTASK_DATA_DIR", BASE_DIR / "data"))

DB_FILES = {
    "accounts": DATA_DIR / "accounts.json",
    "tasks": DATA_DIR / "tasks.json",
}

HOUR_MS = 60 * 60 * 1000

# Hunger / decay
MAX_HUNGER_MS = 24 * HOUR_MS
PENALTY_INTERVAL_MS = 24 * HOUR_MS
FLIES_PER_PENALTY = 1
TASK_HUNGER_REWARD_MS = 4 * HOUR_MS

# Economy
RARITY_ORDER = ["common", "uncommon", "rare", "epic", "legendary"]
GIFT_WIN_WEIGHTS = {
    "common": 0.6,
    "uncommon": 0.25,
    "rare": 0.1,
    "epic": 0.04,
    "legendary": 0.01,
}
TRADE_UP_INPUT_COUNT = 10
NO_PAYOUT_SLOTS = {"container"}
SELL_DIVISOR = 2

# Progression
MILESTONE_THRESHOLDS = (2, 4, 6)
MAX_MILESTONE_GIFTS = 3
MILESTONE_GIFT_ITEM_ID = "gift_box_1"
FLIES_PER_TASK = 10
DAILY_FLIES_LIMIT = 100

# Reminders
ACTIVITY_BUFFER_SIZE = 50
MORNING_WINDOW = (8, 13)
EVENING_WINDOW = (16, 21)
DEFAULT_MORNING_SLOT = 9
DEFAULT_EVENING_SLOT = 18
DEFAULT_TIMEZONE = "UTC"
MIN_NOTIFICATION_GAP_HOURS = 4
SWEEP_BUDGET_SECONDS = 50.0

PUSH_ENDPOINT = os.environ.get("FROGTASK_PUSH_ENDPOINT", "")
PUSH_SERVER_KEY = os.environ.get("FROGTASK_PUSH_SERVER_KEY", "")
PUSH_TIMEOUT = 10
PUSH_TITLE = "FrogTask \U0001F438"

CRON_SECRET = os.environ.get("FROGTASK_CRON_SECRET", "")

CAS_ATTEMPTS = 5
