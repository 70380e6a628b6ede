from datetime import timezone

import pytest

from services.display_agent import DisplayRelayAgent
from services.relay import ControlMessage, SampleMessage, StatusMessage
from services.session_aggregator import SessionAggregator


@pytest.fixture
def aggregator(database, clock):
    return SessionAggregator(database, clock=clock, tz=timezone.utc)


@pytest.fixture
def agent(loopback, aggregator):
    _, display_end = loopback
    return DisplayRelayAgent(display_end, aggregator)


@pytest.fixture
def controls(loopback):
    sensor_end, _ = loopback
    received = []
    sensor_end.on_control_message(received.append)
    return received


async def test_start_opens_session_and_sends_command(agent, aggregator, controls, database, settle):
    assert await agent.start_heart_rate() is True
    await settle()

    assert controls == [ControlMessage.START]
    assert aggregator.current is not None
    stored = await database.query_telemetry_sessions()
    assert [s.id for s in stored] == [aggregator.current.id]


async def test_start_while_unreachable_does_nothing(agent, aggregator, controls, loopback, database, settle):
    sensor_end, _ = loopback
    sensor_end.link.set_up(False)

    assert await agent.start_heart_rate() is False
    sensor_end.link.set_up(True)
    await settle()

    assert controls == []
    assert aggregator.current is None
    assert await database.query_telemetry_sessions() == []


async def test_stop_while_unreachable_keeps_session_open(agent, aggregator, controls, loopback, settle):
    sensor_end, _ = loopback
    await agent.start_heart_rate()
    sensor_end.link.set_up(False)

    assert await agent.stop_heart_rate() is False
    assert aggregator.current is not None
    await settle()
    assert controls == [ControlMessage.START]


async def test_samples_update_latest_and_session(agent, aggregator, loopback, clock, settle):
    sensor_end, _ = loopback
    await agent.start_heart_rate()

    clock.advance(seconds=5)
    sensor_end.send(SampleMessage(bpm=61.0))
    await settle()

    assert agent.bpm == 61.0
    assert agent.last_sample_at == clock()
    assert aggregator.current.min_bpm == 61.0
    assert len(aggregator.current.samples) == 1


async def test_samples_without_session_update_display_only(agent, aggregator, loopback, settle):
    sensor_end, _ = loopback
    sensor_end.send(SampleMessage(bpm=75.0))
    await settle()

    assert agent.bpm == 75.0
    assert aggregator.current is None


async def test_status_recorded(agent, loopback, clock, settle):
    sensor_end, _ = loopback
    sensor_end.send(StatusMessage(status="awake"))
    await settle()

    assert agent.last_status == "awake"
    assert agent.last_status_at == clock()


async def test_stop_closes_and_persists(agent, aggregator, controls, database, clock, settle):
    await agent.start_heart_rate()
    session_id = aggregator.current.id
    clock.advance(minutes=10)

    assert await agent.stop_heart_rate() is True
    await settle()

    assert controls == [ControlMessage.START, ControlMessage.STOP]
    assert aggregator.current is None
    stored = await database.get_telemetry_session(session_id)
    assert stored.end_date == clock()


async def test_status_snapshot(agent):
    status = agent.get_status()
    assert status["reachable"] is True
    assert status["bpm"] == 0.0
    assert status["session"] is None
