from __future__ import annotations

from fastapi import APIRouter

from .. import services
from ..models import ActivityPing, DeviceRegistration, NotificationToggle

router = APIRouter(prefix="/accounts/{account_id}/notifications", tags=["notifications"])


@router.post("/register")
def register(account_id: str, payload: DeviceRegistration) -> dict:
    record = services.register_device(account_id, payload.token, payload.timezone)
    return {
        "enabled": record.enabled,
        "timezone": record.timezone,
        "devices": len(record.device_tokens),
    }


@router.post("/activity")
def activity(account_id: str, payload: ActivityPing) -> dict:
    if payload.hour is None:
        record = services.record_activity(account_id, payload.timezone)
    else:
        record = services.record_activity_hour(account_id, payload.hour, payload.timezone)
    return record.model_dump(mode="json")


@router.post("/enabled")
def toggle(account_id: str, payload: NotificationToggle) -> dict:
    record = services.set_notifications_enabled(account_id, payload.enabled)
    return {"enabled": record.enabled}
