"""Unit tests for ChatChannel (src/video/chat.py)."""

from unittest.mock import MagicMock

import pytest

from src.video.chat import ChatChannel, ChatMessage
from src.video.peer import DataChannel


def channel(peer_id, is_open=True):
    mock = MagicMock(spec=DataChannel)
    mock.peer_id = peer_id
    mock.is_open = is_open
    return mock


@pytest.fixture
def chat():
    return ChatChannel("Asha", clock=lambda: 1_900_000_000_000)


class TestChatChannel:
    def test_username_announced_once_per_channel(self, chat):
        ch = channel("p1")

        chat.add_channel(ch)
        chat.add_channel(ch)

        ch.send.assert_called_once_with({"type": "username", "username": "Asha"})

    def test_closed_channel_not_announced(self, chat):
        ch = channel("p1", is_open=False)
        chat.add_channel(ch)
        ch.send.assert_not_called()

    def test_broadcast_to_open_channels(self, chat):
        open_a, open_b, closed = channel("a"), channel("b"), channel("c", is_open=False)
        for ch in (open_a, open_b, closed):
            chat.add_channel(ch)

        message = chat.send_message("hi all")

        expected = {"type": "message", "message": message.to_payload()}
        open_a.send.assert_called_with(expected)
        open_b.send.assert_called_with(expected)
        closed.send.assert_not_called()
        assert message.timestamp == 1_900_000_000_000
        assert message.is_local is True

    def test_message_without_channels_still_logged_locally(self, chat):
        chat.send_message("anyone?")
        assert [m.text for m in chat.messages] == ["anyone?"]

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_blank_is_noop(self, chat, text):
        assert chat.send_message(text) is None
        assert chat.messages == []

    def test_received_messages_are_not_deduplicated(self, chat):
        payload = {"id": "m1", "sender": "Ravi", "text": "hey", "timestamp": 5}

        chat.receive_message(payload)
        chat.receive_message(payload)

        assert [m.id for m in chat.messages] == ["m1", "m1"]
        assert chat.messages[0] == ChatMessage(id="m1", sender="Ravi", text="hey", timestamp=5)

    def test_remove_channel_allows_reannounce(self, chat):
        ch = channel("p1")
        chat.add_channel(ch)
        chat.remove_channel("p1")
        chat.add_channel(ch)

        assert ch.send.call_count == 2

    def test_close_closes_channels(self, chat):
        ch = channel("p1")
        chat.add_channel(ch)

        chat.close()

        ch.close.assert_called_once()
        assert chat.channels == []
