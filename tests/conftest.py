"""Shared fixtures for the heart-rate relay tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from core.config import Settings
from core.database import Database
from services.relay import create_loopback_pair
from services.sensor import (
    MeasurementConfig,
    MeasurementSession,
    MeasurementState,
    SensorSessionFailure,
    SensorSource,
)


class FakeClock:
    """Manually advanced wall clock"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class FakeSensor(SensorSource):
    """Scriptable sensor source.

    With auto_run the session reports RUNNING before begin returns, as a
    fast platform would. auth_gate, when set, holds authorization open.
    """

    def __init__(self):
        self.authorized = True
        self.fail_begin = False
        self.fail_end = False
        self.auto_run = True
        self.auth_gate: Optional[asyncio.Event] = None
        self.auth_requests = 0
        self.sessions: List[MeasurementSession] = []
        self.ended: List[MeasurementSession] = []

    async def request_authorization(self) -> bool:
        self.auth_requests += 1
        if self.auth_gate is not None:
            await self.auth_gate.wait()
        return self.authorized

    async def begin_measurement_session(self, config: MeasurementConfig) -> MeasurementSession:
        if self.fail_begin:
            raise SensorSessionFailure("hardware busy")
        session = MeasurementSession(config)
        self.sessions.append(session)
        if self.auto_run:
            session._set_state(MeasurementState.RUNNING)
        return session

    async def end_measurement_session(self, session: MeasurementSession) -> None:
        self.ended.append(session)
        if self.fail_end:
            raise SensorSessionFailure("teardown failed")
        session._set_state(MeasurementState.ENDED)


async def _settle(rounds: int = 20):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Let marshaled deliveries and handler tasks run."""
    return _settle


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 22, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}",
        log_format="console",
    )


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture
def sensor():
    return FakeSensor()


@pytest.fixture
async def loopback():
    """Activated (sensor_end, display_end) pair."""
    sensor_end, display_end = create_loopback_pair()
    await sensor_end.activate()
    await display_end.activate()
    yield sensor_end, display_end
    await sensor_end.deactivate()
    await display_end.deactivate()
