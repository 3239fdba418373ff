from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from .. import services
from ..models import ClaimGiftRequest, CompleteTaskRequest

router = APIRouter(prefix="/accounts/{account_id}/progress", tags=["progress"])


@router.get("")
def milestones(account_id: str, timezone: Optional[str] = Query(None)) -> dict:
    today = services.local_today(account_id, timezone)
    record = services.get_milestone_status(account_id, today)
    return record.model_dump(mode="json")


@router.post("/complete-task")
def complete_task(account_id: str, payload: CompleteTaskRequest) -> dict:
    today = services.local_today(account_id, payload.timezone)
    record = services.record_task_completion(account_id, payload.task_id, today)
    return record.model_dump(mode="json")


@router.post("/claim-gift")
def claim_gift(account_id: str, payload: ClaimGiftRequest) -> dict:
    today = services.local_today(account_id, payload.timezone)
    record = services.claim_milestone_gift(account_id, today)
    return record.model_dump(mode="json")
