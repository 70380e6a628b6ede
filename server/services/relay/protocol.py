"""
Heart-rate relay message schema

Wire payloads are string-keyed maps exchanged between the sensor and display sides:

Control: {"command": "start"} | {"command": "stop"}     display -> sensor
Sample:  {"bpm": 62.0}                                  sensor -> display
Status:  {"status": "awake"}                            sensor -> display

There is no version field and no sequence number. New message kinds use new
keys; receivers ignore keys they do not recognize. A single payload may carry
more than one recognized key, each decoded independently.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Union

from constants import (
    BPM_KEY,
    COMMAND_KEY,
    COMMAND_START,
    COMMAND_STOP,
    STATUS_KEY,
)


class ControlMessage(Enum):
    """Start/stop command, no payload"""
    START = COMMAND_START
    STOP = COMMAND_STOP


@dataclass(frozen=True)
class SampleMessage:
    """One observed heart-rate sample"""
    bpm: float


@dataclass(frozen=True)
class StatusMessage:
    """Liveness ping from the sensor side"""
    status: str


RelayMessage = Union[ControlMessage, SampleMessage, StatusMessage]


def encode_message(message: RelayMessage) -> Dict[str, Any]:
    """Encode a message as its wire payload"""
    if isinstance(message, ControlMessage):
        return {COMMAND_KEY: message.value}
    if isinstance(message, SampleMessage):
        return {BPM_KEY: float(message.bpm)}
    if isinstance(message, StatusMessage):
        return {STATUS_KEY: message.status}
    raise TypeError(f"Unsupported relay message: {message!r}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def decode_payload(payload: Any) -> List[RelayMessage]:
    """Decode every recognized message carried by a wire payload.

    Unknown keys, unknown commands and wrongly typed values are skipped.
    """
    if not isinstance(payload, dict):
        return []

    messages: List[RelayMessage] = []

    command = payload.get(COMMAND_KEY)
    if isinstance(command, str):
        try:
            messages.append(ControlMessage(command))
        except ValueError:
            pass

    bpm = payload.get(BPM_KEY)
    if _is_number(bpm):
        messages.append(SampleMessage(bpm=float(bpm)))

    status = payload.get(STATUS_KEY)
    if isinstance(status, str):
        messages.append(StatusMessage(status=status))

    return messages
