"""Synthetic heart-rate sensor.

Emits a heart rate that drifts from a waking value towards a resting value,
with a little noise, the way a falling-asleep wearer would look.
"""
import asyncio
import math
import random
from typing import Dict

import structlog

from .source import (
    MeasurementConfig,
    MeasurementSession,
    MeasurementState,
    SensorSessionFailure,
    SensorSource,
)

logger = structlog.get_logger()


def synthetic_bpm(start_bpm: float, resting_bpm: float, t_s: float,
                  time_constant_s: float = 900.0, noise_std: float = 0.0) -> float:
    """Exponential decay from start_bpm to resting_bpm plus optional gaussian noise."""
    value = resting_bpm + (start_bpm - resting_bpm) * math.exp(-t_s / time_constant_s)
    if noise_std > 0:
        value += random.gauss(0.0, noise_std)
    return round(value, 1)


class SyntheticHeartRateSensor(SensorSource):
    """Simulated wrist sensor for development and tests"""

    def __init__(
        self,
        start_bpm: float = 72.0,
        resting_bpm: float = 56.0,
        startup_delay: float = 1.0,
        authorized: bool = True,
        noise_std: float = 1.5,
        time_constant_s: float = 900.0,
    ):
        self.start_bpm = start_bpm
        self.resting_bpm = resting_bpm
        self.startup_delay = startup_delay
        self.authorized = authorized
        self.noise_std = noise_std
        self.time_constant_s = time_constant_s
        self.busy = False
        self._tasks: Dict[str, asyncio.Task] = {}

    async def request_authorization(self) -> bool:
        logger.info("[Sensor] Authorization requested", granted=self.authorized)
        return self.authorized

    async def begin_measurement_session(self, config: MeasurementConfig) -> MeasurementSession:
        if self.busy:
            raise SensorSessionFailure("Sensor hardware busy")

        session = MeasurementSession(config)
        self.busy = True
        self._tasks[session.id] = asyncio.create_task(self._run(session))
        logger.info("[Sensor] Measurement session requested", session_id=session.id)
        return session

    async def end_measurement_session(self, session: MeasurementSession) -> None:
        task = self._tasks.pop(session.id, None)
        self.busy = bool(self._tasks)
        if task is None:
            raise SensorSessionFailure(f"Unknown measurement session {session.id}")

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        session._set_state(MeasurementState.ENDED)
        logger.info("[Sensor] Measurement session ended", session_id=session.id)

    async def _run(self, session: MeasurementSession):
        await asyncio.sleep(self.startup_delay)
        session._set_state(MeasurementState.RUNNING)
        logger.info("[Sensor] Collection started", session_id=session.id)

        t_s = 0.0
        interval = session.config.sample_interval
        while session.is_running:
            await asyncio.sleep(interval)
            t_s += interval
            session._emit_sample(synthetic_bpm(
                self.start_bpm,
                self.resting_bpm,
                t_s,
                time_constant_s=self.time_constant_s,
                noise_std=self.noise_std,
            ))
