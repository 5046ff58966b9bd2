"""
Typed events delivered by peer adapters to SessionLifecycle.dispatch.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class PeerEventKind(Enum):
    PEER_OPEN = "peer_open"  # own peer id assigned
    INCOMING_CALL = "incoming_call"
    DATA_CHANNEL_OPEN = "data_channel_open"
    STREAM_RECEIVED = "stream_received"
    DATA_RECEIVED = "data_received"
    CONNECTION_CLOSED = "connection_closed"
    CONNECTION_ERROR = "connection_error"


@dataclass
class PeerEvent:
    """
    One callback from the peer library.

    Attributes:
        kind: What happened
        peer_id: Own id for PEER_OPEN, otherwise the remote peer's id. None on
            CONNECTION_ERROR means the endpoint itself failed.
        call: MediaCall the event belongs to, if any
        stream: Remote MediaStream for STREAM_RECEIVED
        channel: DataChannel the event belongs to, if any
        data: Payload for DATA_RECEIVED
        error: Error message for CONNECTION_ERROR
    """

    kind: PeerEventKind
    peer_id: Optional[str] = None
    call: Any = None
    stream: Any = None
    channel: Any = None
    data: Any = None
    error: Optional[str] = None
