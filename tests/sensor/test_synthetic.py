import asyncio

import pytest

from services.sensor import (
    MeasurementConfig,
    MeasurementState,
    SensorSessionFailure,
    SyntheticHeartRateSensor,
)
from services.sensor.synthetic import synthetic_bpm


def test_synthetic_bpm_decays_towards_resting():
    assert synthetic_bpm(72.0, 56.0, 0.0) == 72.0
    values = [synthetic_bpm(72.0, 56.0, t) for t in (0, 300, 900, 3600)]
    assert values == sorted(values, reverse=True)
    assert synthetic_bpm(72.0, 56.0, 100000.0) == 56.0


def make_sensor(**kwargs):
    kwargs.setdefault("startup_delay", 0.0)
    kwargs.setdefault("noise_std", 0.0)
    return SyntheticHeartRateSensor(**kwargs)


async def test_session_runs_after_startup_delay_and_emits():
    sensor = make_sensor(startup_delay=0.05)
    session = await sensor.begin_measurement_session(MeasurementConfig(sample_interval=0.01))
    samples = []
    session.on_sample(samples.append)

    assert session.state == MeasurementState.NOT_STARTED
    await asyncio.sleep(0.2)
    assert session.state == MeasurementState.RUNNING
    assert samples
    assert all(56.0 <= bpm <= 72.0 for bpm in samples)

    await sensor.end_measurement_session(session)
    assert session.state == MeasurementState.ENDED
    count = len(samples)
    await asyncio.sleep(0.05)
    assert len(samples) == count


async def test_second_session_while_busy_fails():
    sensor = make_sensor()
    session = await sensor.begin_measurement_session(MeasurementConfig(sample_interval=0.01))
    with pytest.raises(SensorSessionFailure):
        await sensor.begin_measurement_session(MeasurementConfig())

    await sensor.end_measurement_session(session)
    assert not sensor.busy
    again = await sensor.begin_measurement_session(MeasurementConfig(sample_interval=0.01))
    await sensor.end_measurement_session(again)


async def test_ending_unknown_session_fails():
    sensor = make_sensor()
    session = await sensor.begin_measurement_session(MeasurementConfig(sample_interval=0.01))
    await sensor.end_measurement_session(session)
    with pytest.raises(SensorSessionFailure):
        await sensor.end_measurement_session(session)


async def test_authorization_follows_setting():
    assert await make_sensor().request_authorization() is True
    assert await make_sensor(authorized=False).request_authorization() is False
