"""
Text chat over the call's data channels.

Wire payloads:
    {"type": "username", "username": "..."}   sent once per channel on open
    {"type": "message", "message": {id, sender, text, timestamp}}

Delivery is at-most-once; messages are appended as they arrive and never
deduplicated.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from src.utils.logger import get_logger
from src.utils.timezone import now_millis

from .peer import DataChannel

logger = get_logger(__name__)

USERNAME_PAYLOAD = "username"
MESSAGE_PAYLOAD = "message"


@dataclass
class ChatMessage:
    id: str
    sender: str
    text: str
    timestamp: int  # epoch milliseconds
    is_local: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {"id": self.id, "sender": self.sender, "text": self.text, "timestamp": self.timestamp}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ChatMessage":
        return cls(
            id=str(payload.get("id") or uuid.uuid4()),
            sender=str(payload.get("sender") or "User"),
            text=str(payload.get("text") or ""),
            timestamp=int(payload.get("timestamp") or 0),
            is_local=False,
        )


class ChatChannel:
    """
    Attributes:
        username: Name announced to peers and used as sender
        messages: Append-only message log (local and received)
    """

    def __init__(self, username: str, clock: Callable[[], int] = now_millis):
        self.username = username
        self.messages: List[ChatMessage] = []
        self._clock = clock
        self._channels: Dict[str, DataChannel] = {}
        self._announced: set = set()

    @property
    def channels(self) -> List[DataChannel]:
        return list(self._channels.values())

    def add_channel(self, channel: DataChannel) -> None:
        """Track an open channel and announce our username on it once."""
        self._channels[channel.peer_id] = channel
        if channel.is_open and channel.peer_id not in self._announced:
            channel.send({"type": USERNAME_PAYLOAD, "username": self.username})
            self._announced.add(channel.peer_id)

    def remove_channel(self, peer_id: str) -> None:
        self._channels.pop(peer_id, None)
        self._announced.discard(peer_id)

    def send_message(self, text: str) -> Optional[ChatMessage]:
        """
        Append a local message and broadcast it to every open channel.

        Returns:
            The message, or None for blank input (nothing is appended)
        """
        text = (text or "").strip()
        if not text:
            return None

        message = ChatMessage(
            id=str(uuid.uuid4()),
            sender=self.username,
            text=text,
            timestamp=self._clock(),
            is_local=True,
        )
        self.messages.append(message)

        payload = {"type": MESSAGE_PAYLOAD, "message": message.to_payload()}
        delivered = 0
        for channel in self._channels.values():
            if channel.is_open:
                channel.send(payload)
                delivered += 1
        logger.debug(
            "Chat message sent",
            operation="send_message",
            context={"message_id": message.id, "channels": delivered},
        )
        return message

    def receive_message(self, payload: Dict[str, Any]) -> ChatMessage:
        message = ChatMessage.from_payload(payload)
        self.messages.append(message)
        return message

    def close(self) -> None:
        for channel in self._channels.values():
            channel.close()
        self._channels.clear()
        self._announced.clear()
