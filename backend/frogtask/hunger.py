"""Hunger decay with starvation debt.

Hunger is a signed millisecond countdown. While positive it simply drains.
Once it goes negative the deficit is debt: every full ``PENALTY_INTERVAL_MS``
of debt costs ``FLIES_PER_PENALTY`` flies and is paid back into hunger,
leaving only the partial interval outstanding. A user with no flies left
still has the debt cleared; the unpayable part is forgiven.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Tuple

from . import config
from .models import HungerStatus, UserAccount
from .timeutils import elapsed_ms

_logger = logging.getLogger(__name__)


def settle(account: UserAccount, now: datetime) -> Tuple[UserAccount, int]:
    """Bring the account's hunger up to ``now``.

    Returns the updated copy and the number of flies actually taken.
    Calling it again with the same ``now`` changes nothing.
    """

    state = account.model_copy(deep=True)
    hunger = min(state.hunger, config.MAX_HUNGER_MS)

    if state.last_hunger_update is None:
        state.last_hunger_update = now
        state.hunger = hunger
        return state, 0

    elapsed = elapsed_ms(state.last_hunger_update, now)
    if elapsed <= 0:
        state.hunger = hunger
        return state, 0

    hunger -= elapsed
    taken = 0
    if hunger < 0:
        penalties = -hunger // config.PENALTY_INTERVAL_MS
        if penalties > 0:
            wanted = penalties * config.FLIES_PER_PENALTY
            taken = min(wanted, state.balance)
            state.balance -= taken
            state.stolen_flies += taken
            hunger += penalties * config.PENALTY_INTERVAL_MS
            if taken < wanted:
                _logger.info(
                    "Account %s starved through %s penalties with only %s flies to give",
                    state.id,
                    penalties,
                    taken,
                )

    state.hunger = min(hunger, config.MAX_HUNGER_MS)
    state.last_hunger_update = now
    return state, taken


def acknowledge(account: UserAccount) -> UserAccount:
    state = account.model_copy(deep=True)
    state.stolen_flies = 0
    return state


def feed(account: UserAccount, amount_ms: int) -> UserAccount:
    """Credit hunger, never past the cap. Expects an already settled account."""

    state = account.model_copy(deep=True)
    state.hunger = min(state.hunger + amount_ms, config.MAX_HUNGER_MS)
    return state


def status_for(account: UserAccount, penalty_applied: int = 0) -> HungerStatus:
    return HungerStatus(
        hunger=account.hunger,
        stolen_flies=account.stolen_flies,
        max_hunger=config.MAX_HUNGER_MS,
        penalty_applied=penalty_applied,
        balance=account.balance,
    )


def settled_fields(account: UserAccount) -> dict:
    """``$set`` payload persisting the fields :func:`settle` may touch."""

    return {
        "hunger": account.hunger,
        "last_hunger_update": account.last_hunger_update.isoformat() if account.last_hunger_update else None,
        "balance": account.balance,
        "stolen_flies": account.stolen_flies,
    }
