import asyncio

import pytest

from services.relay import ControlMessage, SampleMessage, StatusMessage
from services.sensor import MeasurementState
from services.sensor_agent import SensorAgentState, SensorRelayAgent


@pytest.fixture
def received(loopback):
    _, display_end = loopback
    messages = []
    display_end.on_sample_message(messages.append)
    display_end.on_status_message(messages.append)
    return messages


@pytest.fixture
def agent(loopback, sensor):
    sensor_end, _ = loopback
    return SensorRelayAgent(sensor_end, sensor)


async def test_start_streams_and_reports_awake(agent, sensor, received, settle):
    await agent.start()
    await settle()

    assert agent.state == SensorAgentState.STREAMING
    assert len(sensor.sessions) == 1
    assert received == [StatusMessage(status="awake")]


async def test_samples_forwarded_while_streaming(agent, sensor, received, settle):
    await agent.start()
    session = sensor.sessions[0]
    for bpm in (62.0, 58.0, 70.0):
        session._emit_sample(bpm)
    await settle()

    samples = [m for m in received if isinstance(m, SampleMessage)]
    assert samples == [SampleMessage(62.0), SampleMessage(58.0), SampleMessage(70.0)]
    assert agent.samples_forwarded == 3


async def test_streaming_waits_for_running(agent, sensor, received, settle):
    sensor.auto_run = False
    await agent.start()
    assert agent.state == SensorAgentState.STARTING

    session = sensor.sessions[0]
    session._emit_sample(60.0)
    await settle()
    assert received == []

    session._set_state(MeasurementState.RUNNING)
    await settle()
    assert agent.state == SensorAgentState.STREAMING
    assert received == [StatusMessage(status="awake")]


async def test_duplicate_start_is_ignored(agent, sensor):
    await agent.start()
    await agent.start()
    assert len(sensor.sessions) == 1
    assert sensor.auth_requests == 1


async def test_rapid_starts_open_one_session(agent, sensor, settle):
    sensor.auth_gate = asyncio.Event()
    first = asyncio.create_task(agent.start())
    second = asyncio.create_task(agent.start())
    await settle()
    assert agent.state == SensorAgentState.STARTING

    sensor.auth_gate.set()
    await asyncio.gather(first, second)
    assert len(sensor.sessions) == 1
    assert agent.state == SensorAgentState.STREAMING


async def test_stop_while_idle_does_nothing(agent, sensor):
    await agent.stop()
    assert agent.state == SensorAgentState.IDLE
    assert sensor.ended == []


async def test_stop_ends_session(agent, sensor, received, settle):
    await agent.start()
    session = sensor.sessions[0]
    await agent.stop()

    assert agent.state == SensorAgentState.IDLE
    assert sensor.ended == [session]

    session._emit_sample(65.0)
    await settle()
    assert not any(isinstance(m, SampleMessage) for m in received)


async def test_stop_during_authorization_opens_nothing(agent, sensor, settle):
    sensor.auth_gate = asyncio.Event()
    starting = asyncio.create_task(agent.start())
    await settle()

    await agent.stop()
    assert agent.state == SensorAgentState.IDLE

    sensor.auth_gate.set()
    await starting
    assert sensor.sessions == []
    assert agent.state == SensorAgentState.IDLE


async def test_authorization_denied_returns_to_idle(agent, sensor, received, settle):
    sensor.authorized = False
    await agent.start()
    await settle()

    assert agent.state == SensorAgentState.IDLE
    assert sensor.sessions == []
    assert received == []


async def test_session_start_failure_returns_to_idle(agent, sensor):
    sensor.fail_begin = True
    await agent.start()
    assert agent.state == SensorAgentState.IDLE

    sensor.fail_begin = False
    await agent.start()
    assert agent.state == SensorAgentState.STREAMING


async def test_session_failure_while_running_returns_to_idle(agent, sensor, settle):
    await agent.start()
    sensor.sessions[0]._set_state(MeasurementState.FAILED, error=RuntimeError("strap lost"))
    await settle()
    assert agent.state == SensorAgentState.IDLE


async def test_teardown_failure_is_swallowed(agent, sensor):
    sensor.fail_end = True
    await agent.start()
    await agent.stop()
    assert agent.state == SensorAgentState.IDLE
    assert len(sensor.ended) == 1


async def test_control_messages_over_transport(agent, sensor, loopback, settle):
    _, display_end = loopback
    display_end.send(ControlMessage.START)
    await settle()
    assert agent.state == SensorAgentState.STREAMING

    display_end.send(ControlMessage.START)
    await settle()
    assert len(sensor.sessions) == 1

    display_end.send(ControlMessage.STOP)
    await settle()
    assert agent.state == SensorAgentState.IDLE
    assert sensor.ended == sensor.sessions


async def test_samples_dropped_while_display_unreachable(agent, sensor, loopback, received, settle):
    sensor_end, _ = loopback
    await agent.start()
    await settle()
    sensor_end.link.set_up(False)
    await settle()

    sensor.sessions[0]._emit_sample(64.0)
    await settle()
    assert agent.state == SensorAgentState.STREAMING
    assert not any(isinstance(m, SampleMessage) for m in received)
