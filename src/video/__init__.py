from .chat import ChatChannel, ChatMessage
from .events import PeerEvent, PeerEventKind
from .lifecycle import CallState, SessionLifecycle, room_id_from_url
from .media import (
    MediaControls,
    MediaDeviceError,
    MediaDevices,
    MediaErrorCategory,
    MediaStream,
    MediaTrack,
    TrackKind,
    translate_media_error,
)
from .peer import DataChannel, MediaCall, PeerEndpoint
from .registry import ConnectionRegistry, PeerConnection

__all__ = [
    "CallState",
    "ChatChannel",
    "ChatMessage",
    "ConnectionRegistry",
    "DataChannel",
    "MediaCall",
    "MediaControls",
    "MediaDeviceError",
    "MediaDevices",
    "MediaErrorCategory",
    "MediaStream",
    "MediaTrack",
    "PeerConnection",
    "PeerEndpoint",
    "PeerEvent",
    "PeerEventKind",
    "SessionLifecycle",
    "TrackKind",
    "room_id_from_url",
]
