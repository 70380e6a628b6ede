"""
Sensor Relay Agent (wearable side)

Turns start/stop control messages into measurement-session lifecycle calls and
forwards each sample to the display side.

State machine: IDLE -> STARTING -> STREAMING -> IDLE

- START while IDLE opens one measurement session; STREAMING is entered only
  when the session confirms RUNNING.
- START while STARTING or STREAMING is ignored. The transport does not
  deduplicate, so repeated starts are expected.
- STOP drops to IDLE at once and then tears the session down. Teardown
  failures are logged and never reported to the peer.
- A failed start leaves the agent IDLE; the display side is not told.
"""
import asyncio
from enum import Enum
from typing import Any, Dict, Optional

import structlog

from constants import STATUS_AWAKE
from services.relay import ControlMessage, SampleMessage, StatusMessage, TransportSession
from services.sensor import (
    MeasurementConfig,
    MeasurementSession,
    MeasurementState,
    SensorAuthorizationDenied,
    SensorSessionFailure,
    SensorSource,
)

logger = structlog.get_logger()


class SensorAgentState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"


class SensorRelayAgent:
    """Drives a SensorSource from relay control messages"""

    def __init__(self, transport: TransportSession, sensor: SensorSource,
                 config: Optional[MeasurementConfig] = None):
        self.transport = transport
        self.sensor = sensor
        self.config = config or MeasurementConfig()

        self.state = SensorAgentState.IDLE
        self.samples_forwarded = 0
        self._session: Optional[MeasurementSession] = None
        # Identity token of the start in flight; a stop replaces it
        self._attempt: Optional[object] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        transport.on_control_message(self.handle_control)
        transport.on_reachability_changed(self._handle_reachability)

    def get_status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "session_id": self._session.id if self._session else None,
            "samples_forwarded": self.samples_forwarded,
            "reachable": self.transport.is_reachable,
        }

    async def handle_control(self, message: ControlMessage):
        if message is ControlMessage.START:
            await self.start()
        elif message is ControlMessage.STOP:
            await self.stop()

    def _handle_reachability(self, reachable: bool):
        if not reachable and self.state != SensorAgentState.IDLE:
            # No stop can arrive while the display is away; keep measuring
            logger.warning("[SensorAgent] Display unreachable, samples will be lost", state=self.state.value)

    # =========================================================================
    # Start
    # =========================================================================

    async def start(self):
        if self.state != SensorAgentState.IDLE:
            logger.warning("[SensorAgent] Start ignored, already active", state=self.state.value)
            return

        self._loop = asyncio.get_running_loop()
        attempt = object()
        self._attempt = attempt
        self.state = SensorAgentState.STARTING
        logger.info("[SensorAgent] Starting measurement")

        try:
            granted = await self.sensor.request_authorization()
            if not granted:
                raise SensorAuthorizationDenied("Heart-rate access not granted")
            if self._attempt is not attempt:
                logger.info("[SensorAgent] Start superseded during authorization")
                return
            session = await self.sensor.begin_measurement_session(self.config)

        except SensorAuthorizationDenied as e:
            logger.warning("[SensorAgent] Authorization denied", error=str(e))
            if self._attempt is attempt:
                self._reset()
            return
        except SensorSessionFailure as e:
            logger.error("[SensorAgent] Measurement session failed to start", error=str(e))
            if self._attempt is attempt:
                self._reset()
            return

        if self._attempt is not attempt:
            logger.info("[SensorAgent] Stopped while session was opening, ending it", session_id=session.id)
            await self._end_session(session)
            return

        self._session = session
        session.on_state_change(self._marshal_state)
        session.on_sample(lambda bpm: self._loop.call_soon_threadsafe(self._forward_sample, session, bpm))

        # RUNNING or FAILED may already have been reported before we subscribed
        if session.state != MeasurementState.NOT_STARTED:
            self._apply_session_state(session, session.state)

    def _marshal_state(self, session: MeasurementSession, state: MeasurementState):
        self._loop.call_soon_threadsafe(self._apply_session_state, session, state)

    def _apply_session_state(self, session: MeasurementSession, state: MeasurementState):
        if session is not self._session:
            return

        if state == MeasurementState.RUNNING and self.state == SensorAgentState.STARTING:
            self.state = SensorAgentState.STREAMING
            logger.info("[SensorAgent] Streaming", session_id=session.id)
            self.transport.send(StatusMessage(status=STATUS_AWAKE))

        elif state == MeasurementState.FAILED:
            logger.error("[SensorAgent] Measurement session failed",
                         session_id=session.id, error=str(session.error))
            self._reset()

        elif state == MeasurementState.ENDED:
            logger.warning("[SensorAgent] Measurement session ended by the sensor", session_id=session.id)
            self._reset()

    def _forward_sample(self, session: MeasurementSession, bpm: float):
        if self.state == SensorAgentState.IDLE or session is not self._session:
            return
        self.transport.send(SampleMessage(bpm=bpm))
        self.samples_forwarded += 1
        logger.debug("[SensorAgent] Sample forwarded", bpm=bpm)

    # =========================================================================
    # Stop
    # =========================================================================

    async def stop(self):
        if self.state == SensorAgentState.IDLE:
            logger.debug("[SensorAgent] Stop ignored, already idle")
            return

        session = self._session
        self._reset()
        logger.info("[SensorAgent] Stopped", session_id=session.id if session else None)

        if session is not None:
            await self._end_session(session)

    async def _end_session(self, session: MeasurementSession):
        try:
            await self.sensor.end_measurement_session(session)
        except SensorSessionFailure as e:
            logger.warning("[SensorAgent] Teardown failed", session_id=session.id, error=str(e))

    def _reset(self):
        self.state = SensorAgentState.IDLE
        self._session = None
        self._attempt = None
