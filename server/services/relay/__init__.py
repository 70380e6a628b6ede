"""
Heart-Rate Relay Module

Message passing between the wearable sensor process and the phone display
process over a best-effort, session-oriented transport.

Components:
- protocol.py: wire schema (control / sample / status messages)
- transport.py: TransportSession base with typed handler registration
- client.py: RelayTransport, WebSocket client of the relay hub
- loopback.py: in-process transport pair
- hub.py: RelayHub, server-side pairing and forwarding
"""

from .client import RelayTransport
from .exceptions import RelayConnectionError, RelayError, TransportUnreachable
from .hub import RelayHub
from .loopback import LoopbackTransport, create_loopback_pair
from .protocol import (
    ControlMessage,
    RelayMessage,
    SampleMessage,
    StatusMessage,
    decode_payload,
    encode_message,
)
from .transport import TransportSession

__all__ = [
    "ControlMessage",
    "LoopbackTransport",
    "RelayConnectionError",
    "RelayError",
    "RelayHub",
    "RelayMessage",
    "RelayTransport",
    "SampleMessage",
    "StatusMessage",
    "TransportSession",
    "TransportUnreachable",
    "create_loopback_pair",
    "decode_payload",
    "encode_message",
]
