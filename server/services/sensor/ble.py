"""BLE heart-rate sensor.

Reads the standard Heart Rate Measurement characteristic (0x2A37) of a strap or
watch broadcasting heart rate. Connection happens in the background after
begin_measurement_session() returns; the session turns RUNNING on the first
notification, which is when collection has actually begun.
"""
import asyncio
from typing import Dict, Optional

import structlog
from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from constants import BLE_HR_MEASUREMENT_UUID, BLE_HR_SERVICE_UUID
from .source import (
    MeasurementConfig,
    MeasurementSession,
    MeasurementState,
    SensorSessionFailure,
    SensorSource,
)

logger = structlog.get_logger()


def parse_heart_rate_measurement(data: bytes) -> Optional[int]:
    """Decode the heart rate value from a Heart Rate Measurement notification.

    Bit 0 of the flags byte selects a uint16 value instead of uint8.
    """
    if not data:
        return None
    flags = data[0]
    if flags & 0x01:
        if len(data) < 3:
            return None
        return int(data[1] | (data[2] << 8))
    if len(data) < 2:
        return None
    return int(data[1])


class BleHeartRateSensor(SensorSource):
    """Heart rate from a BLE device exposing the Heart Rate service"""

    def __init__(self, device_name: Optional[str] = None, scan_timeout: float = 10.0):
        self.device_name = device_name
        self.scan_timeout = scan_timeout
        self._clients: Dict[str, BleakClient] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    async def request_authorization(self) -> bool:
        # BLE heart-rate data needs no per-app grant beyond OS pairing
        return True

    def _matches(self, device, advertisement) -> bool:
        if self.device_name:
            return bool(device.name) and self.device_name.lower() in device.name.lower()
        return BLE_HR_SERVICE_UUID in [u.lower() for u in advertisement.service_uuids]

    async def begin_measurement_session(self, config: MeasurementConfig) -> MeasurementSession:
        if self._tasks:
            raise SensorSessionFailure("A BLE measurement session is already running")

        session = MeasurementSession(config)
        self._tasks[session.id] = asyncio.create_task(self._run(session))
        return session

    async def _run(self, session: MeasurementSession):
        try:
            logger.info("[BLE] Scanning for heart-rate device", name=self.device_name)
            device = await BleakScanner.find_device_by_filter(self._matches, timeout=self.scan_timeout)
            if device is None:
                raise SensorSessionFailure("No heart-rate device found")

            client = BleakClient(device)
            await client.connect()
            self._clients[session.id] = client
            logger.info("[BLE] Connected", name=device.name, address=device.address)

            def handle_notification(_sender, data: bytearray):
                bpm = parse_heart_rate_measurement(bytes(data))
                if bpm is None or bpm == 0:
                    return
                if session.state == MeasurementState.NOT_STARTED:
                    session._set_state(MeasurementState.RUNNING)
                session._emit_sample(float(bpm))

            await client.start_notify(BLE_HR_MEASUREMENT_UUID, handle_notification)

        except (BleakError, SensorSessionFailure, asyncio.TimeoutError, OSError) as e:
            logger.error("[BLE] Measurement session failed", error=str(e))
            self._tasks.pop(session.id, None)
            client = self._clients.pop(session.id, None)
            if client is not None:
                try:
                    await client.disconnect()
                except BleakError as disconnect_error:
                    logger.warning("[BLE] Disconnect after failure failed", error=str(disconnect_error))
            session._set_state(MeasurementState.FAILED, error=e)

    async def end_measurement_session(self, session: MeasurementSession) -> None:
        task = self._tasks.pop(session.id, None)
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        client = self._clients.pop(session.id, None)
        session._set_state(MeasurementState.ENDED)
        if client is None:
            return
        try:
            if client.is_connected:
                await client.stop_notify(BLE_HR_MEASUREMENT_UUID)
            await client.disconnect()
        except BleakError as e:
            raise SensorSessionFailure(f"BLE teardown failed: {e}") from e
