"""Shared fixtures: an isolated JSON store and fake collaborators."""

from __future__ import annotations

import random
from datetime import date, datetime, timezone
from typing import Dict, List, Tuple

import pytest

from frogtask import config, services
from frogtask.errors import InvalidPushToken, PushDeliveryError
from frogtask.models import AccountCreate, UserAccount
from frogtask.tasks import DueTask

FIXED_NOW = datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_store(tmp_path, monkeypatch):
    """Point every collection at a fresh directory for each test."""
    monkeypatch.setitem(config.DB_FILES, "accounts", tmp_path / "accounts.json")
    monkeypatch.setitem(config.DB_FILES, "tasks", tmp_path / "tasks.json")
    return tmp_path


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def today() -> date:
    return FIXED_NOW.date()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def account(now) -> UserAccount:
    return services.create_account(AccountCreate(name="Hopper"), now=now)


class FakePushClient:
    """Records deliveries; tokens listed in ``invalid``/``flaky`` fail."""

    def __init__(self, invalid: Tuple[str, ...] = (), flaky: Tuple[str, ...] = ()) -> None:
        self.invalid = set(invalid)
        self.flaky = set(flaky)
        self.sent: List[Tuple[str, str, str, Dict[str, str]]] = []

    def send(self, token: str, title: str, body: str, data: Dict[str, str]) -> None:
        if token in self.invalid:
            raise InvalidPushToken("gone")
        if token in self.flaky:
            raise PushDeliveryError("timeout")
        self.sent.append((token, title, body, data))


class FakeTaskSource:
    """Serves a fixed number of incomplete tasks per account."""

    def __init__(self, counts: Dict[str, int] | None = None, default: int = 0) -> None:
        self.counts = counts or {}
        self.default = default
        self.calls: List[Tuple[str, date]] = []

    def due_items(self, account_id: str, day: date) -> List[DueTask]:
        self.calls.append((account_id, day))
        count = self.counts.get(account_id, self.default)
        return [DueTask(id=f"{account_id}-{idx}", title="chore") for idx in range(count)]


@pytest.fixture
def push_client() -> FakePushClient:
    return FakePushClient()


@pytest.fixture
def task_source() -> FakeTaskSource:
    return FakeTaskSource(default=3)
