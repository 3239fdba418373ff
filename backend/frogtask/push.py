import logging
from typing import Dict, Optional, Protocol

import requests

from . import config
from .errors import InvalidPushToken, PushDeliveryError

logger = logging.getLogger(__name__)

_PERMANENT_ERROR_CODES = {"UNREGISTERED", "INVALID_ARGUMENT", "NOT_FOUND"}


class PushClient(Protocol):
    def send(self, token: str, title: str, body: str, data: Dict[str, str]) -> None:
        ...


class HttpPushClient:
    """Deliver notifications through an FCM-style HTTP endpoint."""

    def __init__(self, endpoint: str, server_key: str, timeout: float = config.PUSH_TIMEOUT) -> None:
        self.endpoint = endpoint
        self.server_key = server_key
        self.timeout = timeout
        self._session = requests.Session()

    def send(self, token: str, title: str, body: str, data: Dict[str, str]) -> None:
        payload = {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": data,
                "android": {"priority": "high", "notification": {"channel_id": "task_reminders"}},
                "apns": {"payload": {"aps": {"alert": {"title": title, "body": body}, "sound": "default"}}},
            }
        }
        headers = {"Authorization": f"Bearer {self.server_key}"}
        try:
            response = self._session.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise PushDeliveryError("Push provider unreachable") from exc

        if response.ok:
            return
        error_code = _error_code(response)
        if response.status_code in (404, 410) or error_code in _PERMANENT_ERROR_CODES:
            raise InvalidPushToken("Device token is no longer valid", status=response.status_code)
        raise PushDeliveryError("Push provider rejected the message", status=response.status_code)


def _error_code(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("status")
    return None


class LoggingPushClient:
    """Fallback used when no push endpoint is configured."""

    def send(self, token: str, title: str, body: str, data: Dict[str, str]) -> None:
        logger.info("Push (not configured) to %s...: %s", token[:8], body)


def default_client() -> PushClient:
    if config.PUSH_ENDPOINT:
        return HttpPushClient(config.PUSH_ENDPOINT, config.PUSH_SERVER_KEY)
    return LoggingPushClient()
