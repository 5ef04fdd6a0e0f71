"""
Tests for cns/services/orchestrator.py

The orchestrator is driven with a stub embedding backend and FakeLLMProvider
so every event sequence is deterministic.
"""
import pytest

from cns.core.message import Role
from cns.core.stream_assembler import STREAM_ERROR_TEXT
from cns.core.stream_events import (
    CompleteEvent,
    ErrorEvent,
    RejectedEvent,
    TextEvent,
    UserMessageEvent,
    ValidatingEvent,
)
from cns.services.orchestrator import ConversationOrchestrator
from cns.services.relevance_gate import RelevanceGate
from config.config import TopicConfig
from tests.fixtures.stubs import FakeLLMProvider
from utils.errors import ConversationBusyError


@pytest.fixture
def orchestrator(train_topic, model_loader, validation_settings, fake_llm):
    gate = RelevanceGate(loader=model_loader, settings=validation_settings)
    return ConversationOrchestrator(train_topic, gate, fake_llm)


async def collect(orchestrator, text):
    return [event async for event in orchestrator.handle_user_message(text)]


class TestTopicLifecycle:

    def test_starts_with_welcome_message(self, orchestrator):
        assert len(orchestrator.messages) == 1
        welcome = orchestrator.messages[0]
        assert welcome.role is Role.AGENT
        assert welcome.text == "Hello! I am Trains Bot. I am here to discuss Trains. Ask me anything!"

    def test_session_carries_topic_instruction(self, orchestrator, fake_llm):
        assert orchestrator.session is fake_llm.sessions[-1]
        assert '"Trains"' in orchestrator.session.system_instruction

    def test_creation_starts_background_model_load(self, orchestrator, loader_factory, model_loader):
        model_loader._future.result(timeout=5)

        assert loader_factory.calls == 1

    @pytest.mark.asyncio
    async def test_set_topic_resets_conversation(self, orchestrator, fake_llm):
        await collect(orchestrator, "Tell me about a locomotive")
        cooking = TopicConfig.from_dict({"topic": "Cooking", "keywords": ["recipe", "oven"]})

        welcome = orchestrator.set_topic(cooking)

        assert orchestrator.messages == [welcome]
        assert "Cooking Bot" in welcome.text
        assert orchestrator.session is fake_llm.sessions[-1]
        assert len(fake_llm.sessions) == 2


class TestHandleUserMessage:

    @pytest.mark.asyncio
    async def test_relevant_message_streams_reply(self, train_topic, model_loader, validation_settings):
        llm = FakeLLMProvider(replies=[(["Steam ", "locomotives ", "rock."], None)])
        orchestrator = ConversationOrchestrator(
            train_topic, RelevanceGate(loader=model_loader, settings=validation_settings), llm
        )

        events = await collect(orchestrator, "  Tell me about a locomotive  ")

        assert [type(e) for e in events] == [
            UserMessageEvent, ValidatingEvent, TextEvent, TextEvent, TextEvent, CompleteEvent,
        ]
        assert events[0].message.text == "Tell me about a locomotive"
        assert [e.message.text for e in events[2:5]] == ["Steam ", "Steam locomotives ", "Steam locomotives rock."]
        assert llm.sent == ["Tell me about a locomotive"]
        # welcome, user, agent reply
        assert [m.text for m in orchestrator.messages][1:] == [
            "Tell me about a locomotive", "Steam locomotives rock.",
        ]

    @pytest.mark.asyncio
    async def test_off_topic_message_is_rejected(self, orchestrator, fake_llm):
        events = await collect(orchestrator, "Describe the weather tomorrow")

        assert [type(e) for e in events] == [UserMessageEvent, ValidatingEvent, RejectedEvent]
        rejection = events[-1].message
        assert rejection.is_error
        assert "**Trains**" in rejection.text
        assert fake_llm.sent == []
        assert orchestrator.messages[-1] == rejection

    @pytest.mark.asyncio
    async def test_topic_without_keywords_skips_validation(self, model_loader, validation_settings, fake_llm):
        topic = TopicConfig.from_dict({"topic": "Anything"})
        orchestrator = ConversationOrchestrator(
            topic, RelevanceGate(loader=model_loader, settings=validation_settings), fake_llm
        )

        events = await collect(orchestrator, "Describe the weather tomorrow")

        assert isinstance(events[-1], CompleteEvent)
        assert fake_llm.sent == ["Describe the weather tomorrow"]

    @pytest.mark.asyncio
    async def test_stream_failure_yields_error_then_recovers(self, train_topic, model_loader, validation_settings):
        llm = FakeLLMProvider(replies=[(["Half"], ConnectionError("reset")), (["Fine now"], None)])
        orchestrator = ConversationOrchestrator(
            train_topic, RelevanceGate(loader=model_loader, settings=validation_settings), llm
        )

        failed = await collect(orchestrator, "Tell me about a train")
        recovered = await collect(orchestrator, "Tell me about a railway")

        assert [type(e) for e in failed][-2:] == [TextEvent, ErrorEvent]
        assert failed[-1].message.text == STREAM_ERROR_TEXT
        assert failed[-1].message.is_error
        assert isinstance(recovered[-1], CompleteEvent)
        assert recovered[-1].message.text == "Fine now"
        assert not orchestrator.is_busy

    @pytest.mark.asyncio
    async def test_blank_message_is_refused(self, orchestrator):
        with pytest.raises(ValueError):
            await collect(orchestrator, "   ")

        assert len(orchestrator.messages) == 1

    @pytest.mark.asyncio
    async def test_second_message_while_streaming_is_refused(self, orchestrator):
        """CONTRACT: Only one message per conversation may be in flight."""
        first = orchestrator.handle_user_message("Tell me about a locomotive")
        async for event in first:
            if isinstance(event, TextEvent):
                break

        assert orchestrator.is_busy
        with pytest.raises(ConversationBusyError):
            await collect(orchestrator, "Tell me about a railway")
        with pytest.raises(ConversationBusyError):
            orchestrator.set_topic(TopicConfig.from_dict({"topic": "Cooking"}))

        await first.aclose()
        assert not orchestrator.is_busy
