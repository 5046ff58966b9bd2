"""Remote participants of the current call, keyed by peer id."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

DEFAULT_USERNAME = "User"


@dataclass
class PeerConnection:
    peer_id: str
    call: Any = None
    stream: Any = None
    username: str = DEFAULT_USERNAME


class ConnectionRegistry:
    """
    Entries are created when a remote stream arrives, not when a call starts,
    so a call that never produces media never shows up as a participant.

    A username handshake may arrive over the data channel before the stream;
    it is held until the entry exists.
    """

    def __init__(self):
        self._connections: Dict[str, PeerConnection] = {}
        self._pending_usernames: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, peer_id: str) -> bool:
        return peer_id in self._connections

    def get(self, peer_id: str) -> Optional[PeerConnection]:
        return self._connections.get(peer_id)

    def connections(self) -> List[PeerConnection]:
        """Entries in arrival order."""
        return list(self._connections.values())

    def add_incoming(self, peer_id: str, call: Any, stream: Any) -> PeerConnection:
        """First remote stream of an answered call; later streams are ignored."""
        existing = self._connections.get(peer_id)
        if existing is not None:
            return existing
        return self._insert(peer_id, call, stream)

    def upsert_outgoing(self, peer_id: str, call: Any, stream: Any) -> PeerConnection:
        """Remote stream of a placed call; an existing entry is updated in place."""
        existing = self._connections.get(peer_id)
        if existing is None:
            return self._insert(peer_id, call, stream)
        existing.call = call
        existing.stream = stream
        return existing

    def set_username(self, peer_id: str, username: str) -> None:
        existing = self._connections.get(peer_id)
        if existing is None:
            self._pending_usernames[peer_id] = username
            return
        existing.username = username

    def remove(self, peer_id: str) -> Optional[PeerConnection]:
        self._pending_usernames.pop(peer_id, None)
        return self._connections.pop(peer_id, None)

    def clear(self) -> None:
        self._connections.clear()
        self._pending_usernames.clear()

    def _insert(self, peer_id: str, call: Any, stream: Any) -> PeerConnection:
        connection = PeerConnection(
            peer_id=peer_id,
            call=call,
            stream=stream,
            username=self._pending_usernames.pop(peer_id, DEFAULT_USERNAME),
        )
        self._connections[peer_id] = connection
        return connection
