"""Sensor Telemetry Sources for the wearable side."""

from .source import (
    MeasurementConfig,
    MeasurementSession,
    MeasurementState,
    SensorAuthorizationDenied,
    SensorError,
    SensorSessionFailure,
    SensorSource,
)
from .synthetic import SyntheticHeartRateSensor

__all__ = [
    "MeasurementConfig",
    "MeasurementSession",
    "MeasurementState",
    "SensorAuthorizationDenied",
    "SensorError",
    "SensorSessionFailure",
    "SensorSource",
    "SyntheticHeartRateSensor",
]
