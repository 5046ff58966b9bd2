"""
Video-chat test support

In-memory peer network and media devices standing in for the WebRTC peer
library, so call flows can be driven event by event.
"""

from tests.video.fake_peer import FakeDevices, FakePeerNetwork

__all__ = ["FakeDevices", "FakePeerNetwork"]
