from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from .. import services
from ..models import DailyClaimRequest

router = APIRouter(prefix="/accounts/{account_id}/daily-reward", tags=["daily-reward"])


@router.get("")
def calendar(account_id: str, timezone: Optional[str] = Query(None)) -> dict:
    today = services.local_today(account_id, timezone)
    record = services.get_daily_calendar_status(account_id, today)
    return record.model_dump(mode="json")


@router.post("/claim")
def claim(account_id: str, payload: DailyClaimRequest) -> dict:
    today = services.local_today(account_id, payload.timezone)
    record = services.claim_daily_calendar_reward(account_id, payload.day, today)
    return record.model_dump(mode="json")
