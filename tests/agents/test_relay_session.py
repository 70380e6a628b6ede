"""Both agents over one loopback link, storing into a real database."""

from datetime import timezone

import pytest

from services.display_agent import DisplayRelayAgent
from services.sensor_agent import SensorAgentState, SensorRelayAgent
from services.session_aggregator import SessionAggregator


@pytest.fixture
def agents(loopback, sensor, database, clock):
    sensor_end, display_end = loopback
    sensor_agent = SensorRelayAgent(sensor_end, sensor)
    display_agent = DisplayRelayAgent(display_end, SessionAggregator(database, clock=clock, tz=timezone.utc))
    return sensor_agent, display_agent


async def test_night_of_samples_becomes_one_session(agents, sensor, database, clock, settle):
    sensor_agent, display_agent = agents

    assert await display_agent.start_heart_rate()
    await settle()
    assert sensor_agent.state == SensorAgentState.STREAMING
    assert display_agent.last_status == "awake"

    session_id = display_agent.aggregator.current.id
    measurement = sensor.sessions[0]
    for bpm in (62.0, 58.0, 70.0):
        clock.advance(seconds=5)
        measurement._emit_sample(bpm)
        await settle()

    clock.advance(seconds=5)
    assert await display_agent.stop_heart_rate()
    await settle()

    assert sensor_agent.state == SensorAgentState.IDLE
    assert sensor.ended == [measurement]

    stored = await database.get_telemetry_session(session_id)
    assert stored.min_bpm == 58.0
    assert stored.max_bpm == 70.0
    assert [s.bpm for s in stored.bpm_samples] == [62.0, 58.0, 70.0]
    assert stored.end_date > stored.start_date


async def test_restart_same_day_keeps_one_session(agents, sensor, database, clock, settle):
    _, display_agent = agents

    await display_agent.start_heart_rate()
    await settle()
    sensor.sessions[0]._emit_sample(64.0)
    await settle()
    clock.advance(minutes=5)
    await display_agent.stop_heart_rate()
    await settle()

    clock.advance(minutes=5)
    await display_agent.start_heart_rate()
    await settle()
    second_id = display_agent.aggregator.current.id

    stored = await database.query_telemetry_sessions()
    assert [s.id for s in stored] == [second_id]
    assert len(sensor.sessions) == 2
