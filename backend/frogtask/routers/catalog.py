from __future__ import annotations

from fastapi import APIRouter

from .. import catalog as item_catalog
from ..rewards import REWARD_SCHEDULE

router = APIRouter(tags=["catalog"])


@router.get("/catalog")
def list_items() -> dict:
    items = item_catalog.sorted_by_rarity(item_catalog.CATALOG)
    return {"items": [item.model_dump(mode="json") for item in items]}


@router.get("/catalog/daily-rewards")
def daily_rewards() -> dict:
    return {"days": [reward.model_dump(mode="json") for reward in REWARD_SCHEDULE.values()]}
