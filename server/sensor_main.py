"""Wearable-side process for the heart-rate relay.

Runs the sensor relay agent against the relay hub. With --simulate both sides
run in one process over a loopback transport, streaming for --duration
seconds and printing the resulting telemetry session.

Usage:
    python sensor_main.py
    python sensor_main.py --simulate --duration 30
"""

import argparse
import asyncio
import json

from constants import CLIENT_TYPE_SENSOR
from core.config import Settings
from core.database import Database
from core.logging import configure_logging, get_logger
from services.display_agent import DisplayRelayAgent
from services.relay import RelayTransport, create_loopback_pair
from services.sensor import MeasurementConfig, SensorSource, SyntheticHeartRateSensor
from services.sensor_agent import SensorRelayAgent
from services.session_aggregator import SessionAggregator

logger = get_logger(__name__)


def create_sensor(settings: Settings) -> SensorSource:
    """Build the configured sensor source."""
    if settings.sensor_kind == "ble":
        from services.sensor.ble import BleHeartRateSensor
        return BleHeartRateSensor(device_name=settings.sensor_device_name)
    return SyntheticHeartRateSensor(
        start_bpm=settings.synthetic_start_bpm,
        resting_bpm=settings.synthetic_resting_bpm,
        startup_delay=settings.sensor_startup_delay,
        authorized=settings.sensor_authorized,
    )


async def run_sensor(settings: Settings):
    """Serve start/stop commands from the paired display until cancelled."""
    transport = RelayTransport(
        base_url=settings.relay_url,
        client_type=CLIENT_TYPE_SENSOR,
        pairing_code=settings.relay_pairing_code,
        reconnect_delay=settings.relay_reconnect_delay,
        keepalive_interval=settings.relay_keepalive_interval,
    )
    agent = SensorRelayAgent(
        transport,
        create_sensor(settings),
        MeasurementConfig(sample_interval=settings.sensor_sample_interval),
    )

    await transport.activate()
    logger.info("Sensor agent running. Press Ctrl+C to stop.", pairing_code=settings.relay_pairing_code)
    try:
        await asyncio.Event().wait()
    finally:
        await agent.stop()
        await transport.deactivate()


async def run_simulation(settings: Settings, duration: float):
    """Stream for `duration` seconds between in-process sensor and display agents."""
    database = Database(settings)
    await database.startup()

    sensor_end, display_end = create_loopback_pair()
    sensor_agent = SensorRelayAgent(
        sensor_end,
        create_sensor(settings),
        MeasurementConfig(sample_interval=settings.sensor_sample_interval),
    )
    display_agent = DisplayRelayAgent(display_end, SessionAggregator(database, tz=settings.display_tzinfo))

    try:
        await sensor_end.activate()
        await display_end.activate()

        await display_agent.start_heart_rate()
        await asyncio.sleep(duration)
        session = display_agent.aggregator.current
        await display_agent.stop_heart_rate()
        # Let the stop reach the sensor before the link goes down
        await asyncio.sleep(0.1)

        if session is not None:
            print(json.dumps(session.to_dict(include_samples=False), indent=2))
        logger.info("Simulation finished", samples_forwarded=sensor_agent.samples_forwarded)
    finally:
        await sensor_agent.stop()
        await sensor_end.deactivate()
        await display_end.deactivate()
        await database.shutdown()


def main():
    parser = argparse.ArgumentParser(description="Heart-rate relay wearable process")
    parser.add_argument("--simulate", action="store_true",
                        help="Run sensor and display in-process over a loopback link")
    parser.add_argument("--duration", type=float, default=30.0,
                        help="Seconds to stream in --simulate mode")
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings)

    try:
        if args.simulate:
            asyncio.run(run_simulation(settings, args.duration))
        else:
            asyncio.run(run_sensor(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
