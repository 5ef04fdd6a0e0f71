"""
Tests for cns/api/websocket_chat.py

Runs the real FastAPI app through TestClient with a stub embedding loader and
FakeLLMProvider in place of the Anthropic client.
"""
import pytest
from fastapi.testclient import TestClient

from cns.api.websocket_chat import get_friendly_error_message
from config.config import AppConfig
from main import create_app
from tests.fixtures.stubs import FakeLLMProvider
from utils.errors import ConversationBusyError


@pytest.fixture
def llm():
    return FakeLLMProvider(replies=[(["All ", "aboard!"], None)])


@pytest.fixture
def client(train_topic, validation_settings, model_loader, llm):
    app = create_app(
        config=AppConfig(topic=train_topic, validation=validation_settings),
        llm_provider=llm,
        model_loader=model_loader,
    )
    with TestClient(app) as client:
        yield client


def receive_until(ws, *terminal_types):
    frames = []
    while True:
        frame = ws.receive_json()
        frames.append(frame)
        if frame["type"] in terminal_types:
            return frames


class TestWebSocketChat:

    def test_welcome_frame_on_connect(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            frame = ws.receive_json()

        assert frame["type"] == "welcome"
        assert frame["topic"] == "Trains"
        assert frame["assistant_name"] == "Trains Bot"
        assert frame["message"]["role"] == "agent"
        assert "Trains Bot" in frame["message"]["text"]

    def test_ping_pong(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"type": "ping"})

            assert ws.receive_json() == {"type": "pong"}

    def test_relevant_message_streams_frames(self, client, llm):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"type": "message", "content": "Which locomotive is fastest?"})
            frames = receive_until(ws, "complete", "error", "rejected")

        assert [f["type"] for f in frames] == ["user", "validating", "text", "text", "complete"]
        assert frames[0]["message"]["text"] == "Which locomotive is fastest?"
        assert [f["content"] for f in frames[2:4]] == ["All ", "All aboard!"]
        assert len({f["message_id"] for f in frames[2:4]}) == 1
        assert frames[-1]["message"]["text"] == "All aboard!"
        assert llm.sent == ["Which locomotive is fastest?"]

    def test_off_topic_message_is_rejected(self, client, llm):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"type": "message", "content": "Describe the weather tomorrow"})
            frames = receive_until(ws, "complete", "error", "rejected")

        assert [f["type"] for f in frames] == ["user", "validating", "rejected"]
        assert frames[-1]["message"]["is_error"] is True
        assert llm.sent == []

    def test_stream_failure_sends_error_frame(self, train_topic, validation_settings, model_loader):
        llm = FakeLLMProvider(replies=[([], RuntimeError("401 invalid x-api-key"))])
        app = create_app(AppConfig(topic=train_topic, validation=validation_settings), llm, model_loader)

        with TestClient(app) as client, client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"type": "message", "content": "Tell me about a train"})
            frames = receive_until(ws, "complete", "error", "rejected")

        assert frames[-1]["type"] == "error"
        assert frames[-1]["message"]["is_error"] is True
        assert "trouble connecting" in frames[-1]["message"]["text"]

    def test_blank_and_non_string_content_are_refused(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"type": "message", "content": "   "})
            blank = ws.receive_json()
            ws.send_json({"type": "message", "content": 42})
            wrong_type = ws.receive_json()

        assert blank == {"type": "error", "message": "Message cannot be empty"}
        assert wrong_type["type"] == "error"

    def test_unknown_frame_type(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"type": "dance"})

            assert ws.receive_json() == {"type": "error", "message": "Unknown message type: dance"}

    def test_topic_change_sends_new_welcome(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"type": "topic", "topic": "Cooking", "assistantName": "Chef", "keywords": ["recipe"]})
            welcome = ws.receive_json()
            ws.send_json({"type": "message", "content": "Tell me about steam power on the rails"})
            frames = receive_until(ws, "complete", "error", "rejected")

        assert welcome["type"] == "welcome"
        assert welcome["topic"] == "Cooking"
        assert welcome["assistant_name"] == "Chef"
        assert frames[-1]["type"] == "rejected"
        assert "**Cooking**" in frames[-1]["message"]["text"]

    def test_invalid_topic_is_refused(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"type": "topic", "keywords": ["recipe"]})

            frame = ws.receive_json()

        assert frame["type"] == "error"
        assert "topic" in frame["message"]

    def test_out_of_range_topic_overrides_are_refused(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"type": "topic", "topic": "X", "keywords": ["a"], "threshold": "nan", "timeout_ms": -5})
            refused = ws.receive_json()
            ws.send_json({"type": "message", "content": "Tell me about steam power on the rails"})
            frames = receive_until(ws, "complete", "error", "rejected")

        assert refused["type"] == "error"
        assert "threshold" in refused["message"]
        # Conversation stays on the previous topic
        assert frames[-1]["type"] == "complete"


class TestFriendlyErrors:

    def test_busy_error_passes_through(self):
        assert get_friendly_error_message(ConversationBusyError("busy")) == "busy"

    def test_rate_limit(self):
        assert "rate limited" in get_friendly_error_message(RuntimeError("Rate limit exceeded"))

    def test_unknown_error_is_generic(self):
        assert "unexpected error" in get_friendly_error_message(RuntimeError("boom"))
