"""
Local media: streams, device access and the in-call media controls.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from src.errors import MediaAccessError
from src.utils.logger import get_logger

logger = get_logger(__name__)


class TrackKind:
    AUDIO = "audio"
    VIDEO = "video"


class MediaErrorCategory:
    PERMISSION_DENIED = "permission_denied"
    NO_DEVICE = "no_device"
    DEVICE_BUSY = "device_busy"
    UNKNOWN = "unknown"


# device error name -> (category, user-facing message)
MEDIA_ERRORS = {
    "NotAllowedError": (
        MediaErrorCategory.PERMISSION_DENIED,
        "Camera and microphone access is required. Please allow access in your "
        "browser settings and refresh the page.",
    ),
    "PermissionDeniedError": (
        MediaErrorCategory.PERMISSION_DENIED,
        "Camera and microphone access is required. Please allow access in your "
        "browser settings and refresh the page.",
    ),
    "NotFoundError": (
        MediaErrorCategory.NO_DEVICE,
        "No camera or microphone found. Please connect a device and refresh the page.",
    ),
    "NotReadableError": (
        MediaErrorCategory.DEVICE_BUSY,
        "Could not access your camera or microphone. Please ensure no other "
        "application is using them.",
    ),
    "TrackStartError": (
        MediaErrorCategory.DEVICE_BUSY,
        "Could not access your camera or microphone. Please ensure no other "
        "application is using them.",
    ),
}


@dataclass
class MediaTrack:
    kind: str
    label: str = ""
    enabled: bool = True
    ended: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def stop(self) -> None:
        self.ended = True


@dataclass
class MediaStream:
    tracks: List[MediaTrack] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def audio_tracks(self) -> List[MediaTrack]:
        return [track for track in self.tracks if track.kind == TrackKind.AUDIO]

    def video_tracks(self) -> List[MediaTrack]:
        return [track for track in self.tracks if track.kind == TrackKind.VIDEO]

    def stop(self) -> None:
        for track in self.tracks:
            track.stop()


class MediaDeviceError(Exception):
    """
    Raised by device adapters; ``name`` is the platform error name
    (e.g. "NotAllowedError").
    """

    def __init__(self, name: str, message: str = ""):
        super().__init__(message or name)
        self.name = name


class MediaDevices(ABC):
    """Camera, microphone and screen capture."""

    @abstractmethod
    def get_user_media(self, video: bool = True, audio: bool = True) -> MediaStream:
        pass

    @abstractmethod
    def get_display_media(self) -> MediaStream:
        pass


def translate_media_error(error: Exception) -> MediaAccessError:
    """Map a device failure to a MediaAccessError with a distinct category."""
    name = getattr(error, "name", type(error).__name__)
    category, message = MEDIA_ERRORS.get(name, (MediaErrorCategory.UNKNOWN, str(error)))
    return MediaAccessError(message, category=category)


def acquire_local_media(devices: MediaDevices, video: bool = True, audio: bool = True) -> MediaStream:
    """
    Raises:
        MediaAccessError: With the category of the device failure
    """
    try:
        return devices.get_user_media(video=video, audio=audio)
    except MediaDeviceError as e:
        error = translate_media_error(e)
        logger.error(
            "Error accessing media devices",
            operation="acquire_local_media",
            context={"category": error.category},
            error=str(e),
        )
        raise error from e


class MediaControls:
    """
    Audio/video toggles and screen sharing for the local stream.

    Attributes:
        local_stream: Camera/microphone stream
        preview_stream: What the local preview shows (camera or screen)
        screen_stream: Active display stream, or None
    """

    def __init__(
        self,
        local_stream: MediaStream,
        devices: MediaDevices,
        active_calls: Callable[[], Iterable] = lambda: (),
    ):
        self.local_stream = local_stream
        self.devices = devices
        self._active_calls = active_calls
        self.preview_stream = local_stream
        self.screen_stream: Optional[MediaStream] = None

    @property
    def is_audio_enabled(self) -> bool:
        return any(track.enabled for track in self.local_stream.audio_tracks())

    @property
    def is_video_enabled(self) -> bool:
        return any(track.enabled for track in self.local_stream.video_tracks())

    @property
    def is_screen_sharing(self) -> bool:
        return self.screen_stream is not None

    def toggle_audio(self) -> bool:
        """Flip ``enabled`` on every audio track; no renegotiation."""
        for track in self.local_stream.audio_tracks():
            track.enabled = not track.enabled
        return self.is_audio_enabled

    def toggle_video(self) -> bool:
        for track in self.local_stream.video_tracks():
            track.enabled = not track.enabled
        return self.is_video_enabled

    def start_screen_share(self) -> Optional[MediaStream]:
        """
        Show the screen in the preview and send it instead of the camera on
        every active call.

        Returns:
            The display stream, or None when capture failed
        """
        if self.screen_stream is not None:
            return self.screen_stream

        try:
            display = self.devices.get_display_media()
        except MediaDeviceError as e:
            logger.error("Error sharing screen", operation="start_screen_share", error=str(e))
            return None

        screen_tracks = display.video_tracks()
        if not screen_tracks:
            logger.error("Display stream has no video track", operation="start_screen_share")
            display.stop()
            return None

        self.screen_stream = display
        self.preview_stream = MediaStream(tracks=self.local_stream.audio_tracks() + [screen_tracks[0]])
        self._replace_outgoing_video(screen_tracks[0])
        logger.info("Screen share started", operation="start_screen_share")
        return display

    def stop_screen_share(self) -> None:
        """Restore the camera track everywhere and release the display stream."""
        if self.screen_stream is None:
            return

        self.screen_stream.stop()
        self.screen_stream = None
        self.preview_stream = self.local_stream

        camera_tracks = self.local_stream.video_tracks()
        if camera_tracks:
            self._replace_outgoing_video(camera_tracks[0])
        logger.info("Screen share stopped", operation="stop_screen_share")

    def stop_all(self) -> None:
        if self.screen_stream is not None:
            self.screen_stream.stop()
            self.screen_stream = None
        self.local_stream.stop()
        self.preview_stream = self.local_stream

    def _replace_outgoing_video(self, track: MediaTrack) -> None:
        for call in self._active_calls():
            call.replace_video_track(track)
