from __future__ import annotations

from fastapi import APIRouter

from .. import services
from ..models import (
    EquipRequest,
    MarkSeenRequest,
    OpenGiftRequest,
    PurchaseRequest,
    SellRequest,
    TradeUpRequest,
)

router = APIRouter(prefix="/accounts/{account_id}/wardrobe", tags=["wardrobe"])


@router.get("")
def inventory(account_id: str) -> dict:
    record = services.get_inventory(account_id)
    return record.model_dump(mode="json")


@router.post("/purchase")
def purchase(account_id: str, payload: PurchaseRequest) -> dict:
    record = services.purchase(account_id, payload.item_id, payload.quantity)
    return record.model_dump(mode="json")


@router.post("/sell")
def sell(account_id: str, payload: SellRequest) -> dict:
    record = services.sell(account_id, payload.item_id, payload.quantity)
    return record.model_dump(mode="json")


@router.post("/trade-up")
def trade_up(account_id: str, payload: TradeUpRequest) -> dict:
    record = services.trade_up(account_id, payload.item_ids)
    return record.model_dump(mode="json")


@router.post("/open-gift")
def open_gift(account_id: str, payload: OpenGiftRequest) -> dict:
    record = services.open_gift(account_id, payload.gift_item_id)
    return record.model_dump(mode="json")


@router.post("/equip")
def equip(account_id: str, payload: EquipRequest) -> dict:
    record = services.equip(account_id, payload.slot, payload.item_id)
    return record.model_dump(mode="json")


@router.post("/seen")
def mark_seen(account_id: str, payload: MarkSeenRequest) -> dict:
    record = services.mark_items_seen(account_id, payload.item_ids)
    return record.model_dump(mode="json")
