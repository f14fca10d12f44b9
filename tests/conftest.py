from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from medibot.reminders.fanout import NotificationFanout
from medibot.reminders.models import Channel
from medibot.reminders.repository import InMemoryMedicationRepository
from medibot.reminders.scheduler import ReminderScheduler
from reminder_utils import START, FakeClock, RecordingSender


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def senders() -> Dict[Channel, RecordingSender]:
    return {channel: RecordingSender(channel) for channel in Channel}


@pytest.fixture
def fanout(senders) -> NotificationFanout:
    return NotificationFanout(senders, timeout_seconds=1.0)


@pytest.fixture
def scheduler(fanout, clock) -> ReminderScheduler:
    return ReminderScheduler(fanout, clock=clock)


@pytest.fixture
def repository() -> InMemoryMedicationRepository:
    return InMemoryMedicationRepository()


@pytest.fixture
def app(repository, senders, clock):
    from medibot.main import create_app

    return create_app(repository=repository, senders=senders, clock=clock, metrics_enabled=False)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
