"""Pure logic for the wardrobe economy.

Nothing here touches storage. Functions either validate a request against
a snapshot, pick a random reward from an injected ``random.Random``, or
build the update document that ``storage.update_account`` applies
atomically together with its precondition filter.
"""

from __future__ import annotations

import random
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import catalog, config
from .errors import InsufficientInventory, InvalidTradeSet, NoRewardAvailable, NotForSale
from .models import CatalogItem, GrantSummary, Rarity, RewardGrant, RewardType


def inventory_path(item_id: str) -> str:
    return f"inventory.{item_id}"


def purchase_cost(item: CatalogItem, quantity: int) -> int:
    if item.price is None:
        raise NotForSale(f"{item.name} is not sold in the shop", item_id=item.id)
    return item.price * quantity


def sell_value(item: CatalogItem, quantity: int) -> int:
    return ((item.price or 0) // config.SELL_DIVISOR) * quantity


# ---------------------------------------------------------------------------
# Random rewards
# ---------------------------------------------------------------------------


def roll_rarity(rng: random.Random, weights: Optional[Mapping[str, float]] = None) -> Rarity:
    weights = weights or config.GIFT_WIN_WEIGHTS
    roll = rng.random()
    cumulative = 0.0
    for rarity in catalog.RARITY_ORDER:
        cumulative += weights.get(rarity.value, 0.0)
        if roll < cumulative:
            return rarity
    return catalog.RARITY_ORDER[0]


def pick_gift_reward(
    rng: random.Random,
    weights: Optional[Mapping[str, float]] = None,
    items: Iterable[CatalogItem] = catalog.CATALOG,
) -> CatalogItem:
    """Roll a rarity, then walk down the tiers until a non-empty pool is found.

    Gift containers never pay out, so opening one cannot yield another.
    """

    items = list(items)
    rarity = roll_rarity(rng, weights)
    rank = catalog.rarity_rank(rarity)
    while rank >= 0:
        pool = catalog.pool_for(catalog.RARITY_ORDER[rank], catalog=items)
        if pool:
            return rng.choice(pool)
        rank -= 1
    raise NoRewardAvailable("No gift rewards are configured in the catalog", rarity=rarity.value)


def pick_trade_up_reward(
    rarity: Rarity,
    rng: random.Random,
    items: Iterable[CatalogItem] = catalog.CATALOG,
) -> CatalogItem:
    target = catalog.next_rarity(rarity)
    if target is None:
        raise InvalidTradeSet(f"Cannot trade up from {rarity.value}", rarity=rarity.value)
    pool = catalog.pool_for(target, catalog=items)
    if not pool:
        raise NoRewardAvailable(f"No items found for rarity {target.value}", rarity=target.value)
    return rng.choice(pool)


# ---------------------------------------------------------------------------
# Trade-up validation
# ---------------------------------------------------------------------------


def validate_trade_set(item_ids: Sequence[str], inventory: Mapping[str, int]) -> Tuple[Dict[str, int], Rarity]:
    """Check a trade-up request against an inventory snapshot.

    Returns the per-item multiplicities to deduct and the shared rarity.
    The snapshot check gives a precise error; the conditional write still
    re-checks ownership.
    """

    if len(item_ids) != config.TRADE_UP_INPUT_COUNT:
        raise InvalidTradeSet(
            f"Must provide exactly {config.TRADE_UP_INPUT_COUNT} items to trade",
            provided=len(item_ids),
        )

    items: List[CatalogItem] = []
    for item_id in item_ids:
        item = catalog.BY_ID.get(item_id)
        if item is None:
            raise InvalidTradeSet(f"Invalid item ID: {item_id}", item_id=item_id)
        items.append(item)

    counts = dict(Counter(item_ids))
    for item_id, count in counts.items():
        owned = inventory.get(item_id, 0)
        if owned < count:
            raise InvalidTradeSet(
                f"Not enough items of type {item_id}",
                item_id=item_id,
                required=count,
                available=owned,
            )

    rarities = {item.rarity for item in items}
    if len(rarities) != 1:
        raise InvalidTradeSet("All items must be of the same rarity")
    rarity = rarities.pop()
    if catalog.next_rarity(rarity) is None:
        raise InvalidTradeSet(f"Cannot trade up from {rarity.value}", rarity=rarity.value)
    return counts, rarity


def ensure_owned(item_id: str, inventory: Mapping[str, int], quantity: int) -> None:
    owned = inventory.get(item_id, 0)
    if owned < quantity:
        raise InsufficientInventory(item_id, quantity, owned)


# ---------------------------------------------------------------------------
# Update documents
# ---------------------------------------------------------------------------


def merge_updates(*updates: Mapping[str, Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Combine update documents, summing ``$inc`` and unioning ``$addToSet``."""

    merged: Dict[str, Dict[str, Any]] = {}
    for update in updates:
        for operator, fields in update.items():
            bucket = merged.setdefault(operator, {})
            for path, operand in fields.items():
                if operator == "$inc" and path in bucket:
                    bucket[path] += operand
                elif operator == "$addToSet" and path in bucket:
                    existing = bucket[path]["$each"] if isinstance(bucket[path], dict) else [bucket[path]]
                    extra = operand["$each"] if isinstance(operand, dict) else [operand]
                    bucket[path] = {"$each": list(dict.fromkeys([*existing, *extra]))}
                else:
                    bucket[path] = operand
    return merged


def item_grant_update(item_id: str, quantity: int = 1) -> Dict[str, Dict[str, Any]]:
    return {
        "$inc": {inventory_path(item_id): quantity},
        "$addToSet": {"unseen_item_ids": item_id},
    }


def grant_update(grants: Iterable[RewardGrant]) -> Tuple[Dict[str, Dict[str, Any]], GrantSummary]:
    """Translate reward definitions into one update and a summary for the caller."""

    summary = GrantSummary()
    parts: List[Dict[str, Dict[str, Any]]] = []
    for grant in grants:
        if grant.type == RewardType.flies:
            if grant.amount > 0:
                parts.append({"$inc": {"balance": grant.amount}})
                summary.flies += grant.amount
        elif grant.item_id:
            catalog.get_item(grant.item_id)
            parts.append(item_grant_update(grant.item_id))
            summary.items.append(grant.item_id)
    return merge_updates(*parts), summary


def cleanup_match(item_id: str) -> Dict[str, Any]:
    return {inventory_path(item_id): {"$lte": 0}}


def cleanup_update(item_id: str) -> Dict[str, Dict[str, Any]]:
    return {"$unset": {inventory_path(item_id): ""}, "$pull": {"unseen_item_ids": item_id}}
