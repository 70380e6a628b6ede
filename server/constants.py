"""Centralized constants for the heart-rate relay.

Single source of truth for wire keys, relay method names and client roles,
shared by the sensor process, the display service and the relay hub.
"""

from typing import Dict, FrozenSet

# =============================================================================
# WIRE PAYLOAD KEYS
# =============================================================================

COMMAND_KEY = "command"
BPM_KEY = "bpm"
STATUS_KEY = "status"

COMMAND_START = "start"
COMMAND_STOP = "stop"

STATUS_AWAKE = "awake"

# =============================================================================
# RELAY HUB (JSON-RPC 2.0 notifications)
# =============================================================================

JSONRPC_VERSION = "2.0"

RELAY_SEND = "relay.send"
RELAY_MESSAGE = "relay.message"
PAIRING_CONNECTED = "pairing.connected"
PAIRING_DISCONNECTED = "pairing.disconnected"
CONNECTION_ESTABLISHED = "connection.established"
PING = "ping"

CLIENT_TYPE_SENSOR = "sensor"
CLIENT_TYPE_DISPLAY = "display"

CLIENT_TYPES: FrozenSet[str] = frozenset([
    CLIENT_TYPE_SENSOR,
    CLIENT_TYPE_DISPLAY,
])

# WebSocket close codes used by the hub
WS_CLOSE_REPLACED = 4000
WS_CLOSE_INVALID_CLIENT = 4001

# =============================================================================
# SENSOR
# =============================================================================

# Standard BLE Heart Rate service / measurement characteristic
BLE_HR_SERVICE_UUID = "0000180d-0000-1000-8000-00805f9b34fb"
BLE_HR_MEASUREMENT_UUID = "00002a37-0000-1000-8000-00805f9b34fb"

# =============================================================================
# AUDIO
# =============================================================================

# Track name -> length in seconds
DEFAULT_AUDIO_TRACKS: Dict[str, float] = {
    "rain": 1800.0,
    "ocean_waves": 2400.0,
    "forest_night": 2700.0,
    "white_noise": 3600.0,
}
