from __future__ import annotations

from fastapi import APIRouter

from .. import services

router = APIRouter(prefix="/accounts/{account_id}/hunger", tags=["hunger"])


@router.get("")
def status(account_id: str) -> dict:
    record = services.get_hunger_status(account_id)
    return record.model_dump(mode="json")


@router.post("/acknowledge")
def acknowledge(account_id: str) -> dict:
    record = services.acknowledge_hunger(account_id)
    return record.model_dump(mode="json")
