"""
Sensor Telemetry Source contract

Models the wearable's physiological sensor framework: authorization, a bounded
measurement session whose RUNNING state is confirmed asynchronously, and
periodic scalar samples delivered through callbacks.
"""
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional


class SensorError(Exception):
    """Base sensor error"""


class SensorAuthorizationDenied(SensorError):
    """The user or platform refused access to heart-rate data"""


class SensorSessionFailure(SensorError):
    """The measurement session could not start, failed while running, or failed to end"""


class MeasurementState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    ENDED = "ended"
    FAILED = "failed"


@dataclass(frozen=True)
class MeasurementConfig:
    """Measurement session configuration"""
    activity_type: str = "mind_and_body"
    location_type: str = "indoor"
    sample_interval: float = 5.0


class MeasurementSession:
    """Handle for one measurement session.

    The source drives it through _set_state() and _emit_sample(); the owner
    listens with on_state_change() and on_sample().
    """

    def __init__(self, config: MeasurementConfig):
        self.id = uuid.uuid4().hex
        self.config = config
        self.state = MeasurementState.NOT_STARTED
        self.error: Optional[BaseException] = None
        self._state_handlers: List[Callable[["MeasurementSession", MeasurementState], Any]] = []
        self._sample_handlers: List[Callable[[float], Any]] = []

    @property
    def is_running(self) -> bool:
        return self.state == MeasurementState.RUNNING

    def on_state_change(self, handler: Callable[["MeasurementSession", MeasurementState], Any]):
        self._state_handlers.append(handler)
        return handler

    def on_sample(self, handler: Callable[[float], Any]):
        self._sample_handlers.append(handler)
        return handler

    def _set_state(self, state: MeasurementState, error: Optional[BaseException] = None) -> None:
        if state == self.state:
            return
        self.state = state
        self.error = error
        for handler in list(self._state_handlers):
            handler(self, state)

    def _emit_sample(self, bpm: float) -> None:
        # Samples only flow while collection is actually running
        if self.state != MeasurementState.RUNNING:
            return
        for handler in list(self._sample_handlers):
            handler(bpm)


class SensorSource(ABC):
    """Physiological sensor framework"""

    @abstractmethod
    async def request_authorization(self) -> bool:
        """Ask for heart-rate read access. Returns True when granted."""

    @abstractmethod
    async def begin_measurement_session(self, config: MeasurementConfig) -> MeasurementSession:
        """Request a measurement session.

        Returns as soon as the request is accepted; RUNNING is reported later
        through the session's state handlers. Raises SensorSessionFailure.
        """

    @abstractmethod
    async def end_measurement_session(self, session: MeasurementSession) -> None:
        """End a session and finalize its collection. Raises SensorSessionFailure."""
