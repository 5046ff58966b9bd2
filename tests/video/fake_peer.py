"""
In-memory implementations of the peer adapter and media device interfaces.

Events are queued rather than delivered inline, the way the real library
calls back on a later tick; ``FakePeerNetwork.flush()`` delivers them.
"""

import copy
from collections import deque
from typing import Callable, Dict, List, Optional

from src.video.events import PeerEvent, PeerEventKind
from src.video.media import MediaDeviceError, MediaDevices, MediaStream, MediaTrack, TrackKind
from src.video.peer import DataChannel, MediaCall, PeerEndpoint


def camera_stream() -> MediaStream:
    return MediaStream(
        tracks=[
            MediaTrack(kind=TrackKind.AUDIO, label="mic"),
            MediaTrack(kind=TrackKind.VIDEO, label="camera"),
        ]
    )


class FakeDevices(MediaDevices):
    def __init__(self, user_media_error: Optional[str] = None, display_error: Optional[str] = None):
        self.user_media_error = user_media_error
        self.display_error = display_error
        self.streams: List[MediaStream] = []

    def get_user_media(self, video: bool = True, audio: bool = True) -> MediaStream:
        if self.user_media_error:
            raise MediaDeviceError(self.user_media_error)
        stream = camera_stream()
        self.streams.append(stream)
        return stream

    def get_display_media(self) -> MediaStream:
        if self.display_error:
            raise MediaDeviceError(self.display_error)
        return MediaStream(tracks=[MediaTrack(kind=TrackKind.VIDEO, label="screen")])


class FakeCall(MediaCall):
    def __init__(self, network: "FakePeerNetwork", owner: "FakeEndpoint", peer_id: str):
        self.network = network
        self.owner = owner
        self.peer_id = peer_id
        self.remote: Optional["FakeCall"] = None
        self.sent_stream: Optional[MediaStream] = None
        self.replaced_tracks: List[MediaTrack] = []
        self.closed = False

    def answer(self, stream: MediaStream) -> None:
        self.sent_stream = stream
        caller = self.remote
        self.network.post(
            caller.owner,
            PeerEvent(PeerEventKind.STREAM_RECEIVED, peer_id=caller.peer_id, call=caller, stream=stream),
        )
        self.network.post(
            self.owner,
            PeerEvent(
                PeerEventKind.STREAM_RECEIVED, peer_id=self.peer_id, call=self, stream=caller.sent_stream
            ),
        )

    def replace_video_track(self, track: MediaTrack) -> None:
        self.replaced_tracks.append(track)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.remote is not None and not self.remote.closed:
            self.remote.closed = True
            self.network.post(
                self.remote.owner,
                PeerEvent(PeerEventKind.CONNECTION_CLOSED, peer_id=self.remote.peer_id, call=self.remote),
            )


class FakeChannel(DataChannel):
    def __init__(self, network: "FakePeerNetwork", owner: "FakeEndpoint", peer_id: str):
        self.network = network
        self.owner = owner
        self.peer_id = peer_id
        self.remote: Optional["FakeChannel"] = None
        self.opened = False
        self.sent: List[dict] = []

    @property
    def is_open(self) -> bool:
        return self.opened

    def send(self, payload: dict) -> None:
        self.sent.append(payload)
        if self.opened and self.remote is not None:
            self.network.post(
                self.remote.owner,
                PeerEvent(
                    PeerEventKind.DATA_RECEIVED,
                    peer_id=self.remote.peer_id,
                    channel=self.remote,
                    data=copy.deepcopy(payload),
                ),
            )

    def close(self) -> None:
        if not self.opened:
            return
        self.opened = False
        if self.remote is not None and self.remote.opened:
            self.remote.opened = False
            self.network.post(
                self.remote.owner,
                PeerEvent(PeerEventKind.CONNECTION_CLOSED, peer_id=self.remote.peer_id, channel=self.remote),
            )


class FakeEndpoint(PeerEndpoint):
    def __init__(self, network: "FakePeerNetwork", peer_id: str, on_event: Callable[[PeerEvent], None]):
        self.network = network
        self.id = peer_id
        self.on_event = on_event
        self.destroyed = False
        self.calls: List[FakeCall] = []
        self.channels: List[FakeChannel] = []

    def call(self, peer_id: str, stream: MediaStream) -> MediaCall:
        local = FakeCall(self.network, self, peer_id)
        local.sent_stream = stream
        self.calls.append(local)

        remote_endpoint = self.network.endpoints.get(peer_id)
        if remote_endpoint is None:
            self.network.post(
                self, PeerEvent(PeerEventKind.CONNECTION_ERROR, error=f"Could not connect to peer {peer_id}")
            )
            return local

        remote = FakeCall(self.network, remote_endpoint, self.id)
        local.remote, remote.remote = remote, local
        remote_endpoint.calls.append(remote)
        self.network.post(
            remote_endpoint, PeerEvent(PeerEventKind.INCOMING_CALL, peer_id=self.id, call=remote)
        )
        return local

    def connect(self, peer_id: str) -> DataChannel:
        local = FakeChannel(self.network, self, peer_id)
        self.channels.append(local)

        remote_endpoint = self.network.endpoints.get(peer_id)
        if remote_endpoint is None:
            return local

        remote = FakeChannel(self.network, remote_endpoint, self.id)
        local.remote, remote.remote = remote, local
        remote_endpoint.channels.append(remote)
        local.opened = remote.opened = True
        self.network.post(
            remote_endpoint,
            PeerEvent(PeerEventKind.DATA_CHANNEL_OPEN, peer_id=self.id, channel=remote),
        )
        self.network.post(self, PeerEvent(PeerEventKind.DATA_CHANNEL_OPEN, peer_id=peer_id, channel=local))
        return local

    def destroy(self) -> None:
        self.destroyed = True
        self.network.endpoints.pop(self.id, None)


class FakePeerNetwork:
    """Signalling server stand-in; ``factory`` is a PeerFactory."""

    def __init__(self):
        self.endpoints: Dict[str, FakeEndpoint] = {}
        self.queue = deque()
        self._anonymous = 0

    def factory(self, peer_id: Optional[str], on_event: Callable[[PeerEvent], None]) -> PeerEndpoint:
        if peer_id is None:
            self._anonymous += 1
            peer_id = f"peer-{self._anonymous}"
        endpoint = FakeEndpoint(self, peer_id, on_event)
        self.endpoints[peer_id] = endpoint
        self.post(endpoint, PeerEvent(PeerEventKind.PEER_OPEN, peer_id=peer_id))
        return endpoint

    def post(self, endpoint: FakeEndpoint, event: PeerEvent) -> None:
        self.queue.append((endpoint, event))

    def flush(self) -> None:
        while self.queue:
            endpoint, event = self.queue.popleft()
            endpoint.on_event(event)
