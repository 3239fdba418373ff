from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, status

from .. import config, services

router = APIRouter(prefix="/cron", tags=["cron"])


def _authorized(header: Optional[str]) -> bool:
    if not config.CRON_SECRET:
        return True
    expected = f"Bearer {config.CRON_SECRET}"
    return header is not None and hmac.compare_digest(header, expected)


@router.api_route("/send-reminders", methods=["GET", "POST"])
def send_reminders(authorization: Optional[str] = Header(None)) -> dict:
    if not _authorized(authorization):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    report = services.run_reminder_sweep()
    return report.model_dump(mode="json")
