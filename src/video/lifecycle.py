"""
SessionLifecycle - create-room / join-room call state machine.

States:
    IDLE -> ACQUIRING_MEDIA -> WAITING_FOR_PEER (host) | DIALING (joiner)
         -> IN_CALL -> ENDED

The host's peer id is the room id; joiners get an anonymous id and, once it
is assigned, open a data channel to the room and call it. Every callback from
the peer library arrives as a PeerEvent through ``dispatch``.
"""

import uuid
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set
from urllib.parse import parse_qs, urlencode, urlparse

from src.errors import MediaAccessError, ValidationError
from src.utils.logger import get_logger

from .chat import MESSAGE_PAYLOAD, USERNAME_PAYLOAD, ChatChannel
from .events import PeerEvent, PeerEventKind
from .media import MediaControls, MediaDevices, MediaStream, acquire_local_media
from .peer import MediaCall, PeerEndpoint, PeerFactory
from .registry import ConnectionRegistry

logger = get_logger(__name__)

ROOM_QUERY_PARAM = "room"


class CallState(Enum):
    IDLE = "idle"
    ACQUIRING_MEDIA = "acquiring_media"
    WAITING_FOR_PEER = "waiting_for_peer"
    DIALING = "dialing"
    IN_CALL = "in_call"
    ENDED = "ended"


def room_id_from_url(url: str) -> Optional[str]:
    """Room id from an invite link's ``?room=`` parameter."""
    values = parse_qs(urlparse(url).query).get(ROOM_QUERY_PARAM)
    if not values or not values[0].strip():
        return None
    return values[0].strip()


class SessionLifecycle:
    """
    Attributes:
        state: Current CallState
        room_id: Room being hosted or joined
        peer_id: Own peer id once assigned
        is_host: True for the room creator
        error: Last endpoint-level error message
        registry: Remote participants
        chat: Chat over the data channels
        media: Media controls, available once local media is acquired
    """

    def __init__(
        self,
        peer_factory: PeerFactory,
        devices: MediaDevices,
        username: str = "User",
        room_id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.peer_factory = peer_factory
        self.devices = devices
        self.username = username or "User"
        self._room_id_factory = room_id_factory

        self.state = CallState.IDLE
        self.room_id: Optional[str] = None
        self.peer_id: Optional[str] = None
        self.is_host = False
        self.error: Optional[str] = None

        self.endpoint: Optional[PeerEndpoint] = None
        self.local_stream: Optional[MediaStream] = None
        self.media: Optional[MediaControls] = None
        self.registry = ConnectionRegistry()
        self.chat = ChatChannel(self.username)

        self._calls: Dict[str, MediaCall] = {}
        self._outgoing: Set[str] = set()
        self._handlers: Dict[PeerEventKind, Callable[[PeerEvent], None]] = {
            PeerEventKind.PEER_OPEN: self._on_peer_open,
            PeerEventKind.INCOMING_CALL: self._on_incoming_call,
            PeerEventKind.DATA_CHANNEL_OPEN: self._on_data_channel_open,
            PeerEventKind.STREAM_RECEIVED: self._on_stream_received,
            PeerEventKind.DATA_RECEIVED: self._on_data_received,
            PeerEventKind.CONNECTION_CLOSED: self._on_connection_closed,
            PeerEventKind.CONNECTION_ERROR: self._on_connection_error,
        }

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def create_room(self) -> str:
        """
        Host a new room: the endpoint's own id is the room id.

        Raises:
            MediaAccessError: Camera/microphone unavailable (state returns to IDLE)
        """
        self._require_idle("create_room")
        self.is_host = True
        self.room_id = self._room_id_factory()
        self._acquire_media()
        self.state = CallState.WAITING_FOR_PEER
        self.endpoint = self.peer_factory(self.room_id, self.dispatch)
        logger.info("Room created", operation="create_room", context={"room_id": self.room_id})
        return self.room_id

    def join_room(self, room_id: str) -> None:
        """
        Join an existing room; the call is placed once our own id is assigned.

        Raises:
            ValidationError: Blank room id
            MediaAccessError: Camera/microphone unavailable (state returns to IDLE)
        """
        room_id = (room_id or "").strip()
        if not room_id:
            raise ValidationError("Please enter a room ID", field="room")

        self._require_idle("join_room")
        self.is_host = False
        self.room_id = room_id
        self._acquire_media()
        self.state = CallState.DIALING
        self.endpoint = self.peer_factory(None, self.dispatch)
        logger.info("Joining room", operation="join_room", context={"room_id": room_id})

    def dispatch(self, event: PeerEvent) -> None:
        """Apply one peer-library callback. Late events after hangup are dropped."""
        if self.state in (CallState.IDLE, CallState.ENDED):
            logger.debug(
                "Ignoring peer event",
                operation="dispatch",
                context={"kind": event.kind.value, "state": self.state.value},
            )
            return
        self._handlers[event.kind](event)

    def hangup(self) -> None:
        """Close every call and channel, destroy the endpoint, stop local media."""
        if self.state == CallState.ENDED:
            return
        self._teardown()
        logger.info("Call ended", operation="hangup", context={"room_id": self.room_id})

    def room_link(self, base_url: str) -> str:
        """Shareable invite link for the current room."""
        if not self.room_id:
            raise ValidationError("No room to share", field="room")
        return f"{base_url.split('?')[0]}?{urlencode({ROOM_QUERY_PARAM: self.room_id})}"

    @property
    def active_calls(self):
        return list(self._calls.values())

    # ------------------------------------------------------------------ #
    # Event handlers
    # ------------------------------------------------------------------ #
    def _on_peer_open(self, event: PeerEvent) -> None:
        self.peer_id = event.peer_id
        if self.is_host or self.endpoint is None:
            return

        self.chat.add_channel(self.endpoint.connect(self.room_id))
        call = self.endpoint.call(self.room_id, self.local_stream)
        self._calls[self.room_id] = call
        self._outgoing.add(self.room_id)

    def _on_incoming_call(self, event: PeerEvent) -> None:
        call = event.call
        if self.local_stream is None:
            logger.warning("Incoming call without local media", operation="incoming_call")
            return
        call.answer(self.local_stream)
        if self.media is not None and self.media.is_screen_sharing:
            call.replace_video_track(self.media.screen_stream.video_tracks()[0])
        self._calls[self._remote_id(event)] = call

    def _on_data_channel_open(self, event: PeerEvent) -> None:
        self.chat.add_channel(event.channel)

    def _on_stream_received(self, event: PeerEvent) -> None:
        peer_id = self._remote_id(event)
        if peer_id in self._outgoing:
            self.registry.upsert_outgoing(peer_id, event.call, event.stream)
        else:
            self.registry.add_incoming(peer_id, event.call, event.stream)

        if self.state != CallState.IN_CALL:
            self.state = CallState.IN_CALL
            logger.info("Call connected", operation="stream_received", context={"peer_id": peer_id})

    def _on_data_received(self, event: PeerEvent) -> None:
        payload: Any = event.data
        if not isinstance(payload, dict):
            return
        if payload.get("type") == USERNAME_PAYLOAD:
            self.registry.set_username(self._remote_id(event), str(payload.get("username") or "User"))
        elif payload.get("type") == MESSAGE_PAYLOAD and isinstance(payload.get("message"), dict):
            self.chat.receive_message(payload["message"])

    def _on_connection_closed(self, event: PeerEvent) -> None:
        peer_id = self._remote_id(event)
        if event.channel is not None:
            self.chat.remove_channel(peer_id)
            return
        self._calls.pop(peer_id, None)
        self._outgoing.discard(peer_id)
        self.registry.remove(peer_id)

    def _on_connection_error(self, event: PeerEvent) -> None:
        if event.peer_id is None and event.call is None and event.channel is None:
            self.error = event.error or "Peer connection error"
            logger.error("Peer endpoint failed", operation="connection_error", error=self.error)
            self._teardown()
            return

        logger.warning(
            "Peer connection failed",
            operation="connection_error",
            context={"peer_id": self._remote_id(event)},
            error=event.error,
        )
        self._on_connection_closed(event)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _acquire_media(self) -> None:
        self.state = CallState.ACQUIRING_MEDIA
        try:
            self.local_stream = acquire_local_media(self.devices)
        except MediaAccessError as e:
            self.state = CallState.IDLE
            self.error = str(e)
            raise
        self.media = MediaControls(self.local_stream, self.devices, lambda: self.active_calls)

    def _teardown(self) -> None:
        for call in list(self._calls.values()):
            call.close()
        self._calls.clear()
        self._outgoing.clear()
        self.chat.close()
        if self.endpoint is not None:
            self.endpoint.destroy()
        if self.media is not None:
            self.media.stop_all()
        elif self.local_stream is not None:
            self.local_stream.stop()
        self.registry.clear()
        self.state = CallState.ENDED

    def _require_idle(self, operation: str) -> None:
        if self.state != CallState.IDLE:
            raise ValidationError(f"Cannot {operation.replace('_', ' ')} while {self.state.value}")

    @staticmethod
    def _remote_id(event: PeerEvent) -> str:
        if event.peer_id:
            return event.peer_id
        source = event.call if event.call is not None else event.channel
        return getattr(source, "peer_id", "")
