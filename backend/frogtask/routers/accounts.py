from __future__ import annotations

from fastapi import APIRouter

from .. import services
from ..models import AccountCreate, PremiumUpdate

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.post("")
def create_account(payload: AccountCreate) -> dict:
    record = services.create_account(payload)
    return record.model_dump(mode="json")


@router.get("/{account_id}")
def get_account(account_id: str) -> dict:
    record = services.get_account(account_id)
    return record.model_dump(mode="json")


@router.post("/{account_id}/premium")
def set_premium(account_id: str, payload: PremiumUpdate) -> dict:
    record = services.set_premium_until(account_id, payload.premium_until)
    return {"account_id": record.id, "premium_until": record.model_dump(mode="json")["premium_until"]}
