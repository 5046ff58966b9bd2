"""
Adapter interfaces over the peer-to-peer library.

A concrete adapter wraps the real library (signalling server, ICE, SDP) and
reports every callback as a PeerEvent through the ``on_event`` function it
was built with. Nothing in the call flow talks to the library directly.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from .events import PeerEvent
from .media import MediaStream, MediaTrack


class MediaCall(ABC):
    """One audio/video call with a remote peer."""

    peer_id: str

    @abstractmethod
    def answer(self, stream: MediaStream) -> None:
        """Accept an incoming call, sending ``stream``."""

    @abstractmethod
    def replace_video_track(self, track: MediaTrack) -> None:
        """Swap the outgoing video track without renegotiating."""

    @abstractmethod
    def close(self) -> None:
        pass


class DataChannel(ABC):
    """Reliable message channel with a remote peer."""

    peer_id: str

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    def send(self, payload: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class PeerEndpoint(ABC):
    """
    This client's presence on the signalling network.

    Attributes:
        id: Own peer id (None until PEER_OPEN for anonymous endpoints)
    """

    id: Optional[str]

    @abstractmethod
    def call(self, peer_id: str, stream: MediaStream) -> MediaCall:
        pass

    @abstractmethod
    def connect(self, peer_id: str) -> DataChannel:
        """Open a data channel; DATA_CHANNEL_OPEN follows once it is usable."""

    @abstractmethod
    def destroy(self) -> None:
        pass


# (requested peer id or None for anonymous, event callback) -> endpoint
PeerFactory = Callable[[Optional[str], Callable[[PeerEvent], None]], PeerEndpoint]
