"""Relay transport error taxonomy.

None of these cross the relay boundary: the protocol is fire-and-forget and
has no acknowledgement channel, so every failure is handled where it happens.
"""


class RelayError(Exception):
    """Base relay error"""


class TransportUnreachable(RelayError):
    """Peer is not paired or not connected"""


class RelayConnectionError(RelayError):
    """Could not establish a session with the relay hub"""
