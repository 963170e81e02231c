from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from satio.api import create_app
from satio.clock import Clock
from satio.config import RewardPolicy, Settings
from satio.service import RewardService
from satio.storage import Storage
from satio.tables import AdSession, Reward

ADMIN_KEY = "test-admin-key"


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 3, 14, 12, 0, 0).astimezone()

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def storage(tmp_path):
    storage = Storage(f"sqlite:///{tmp_path / 'satio.sqlite'}", timeout=10.0)
    storage.init_schema()
    yield storage
    storage.dispose()


@pytest.fixture
def service(storage, clock):
    return RewardService(storage, RewardPolicy(), admin_key=ADMIN_KEY, clock=clock)


@pytest.fixture
def client(service):
    settings = Settings(
        database_url=service.storage.url,
        admin_key=ADMIN_KEY,
        sweep_interval_seconds=0,
    )
    with TestClient(create_app(settings, service)) as client:
        yield client


def reward_count(storage, session_id=None):
    with storage.transaction() as db:
        stmt = select(func.count(Reward.id))
        if session_id is not None:
            stmt = stmt.where(Reward.session_id == session_id)
        return db.execute(stmt).scalar_one()


def session_used(storage, session_id):
    with storage.transaction() as db:
        return db.execute(select(AdSession.used).where(AdSession.session_id == session_id)).scalar_one()
