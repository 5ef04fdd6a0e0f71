"""
Conversation orchestrator.

Coordinates one topic-restricted conversation: the user message is recorded,
checked by the relevance gate, and then either answered with a rejection or
forwarded to the generation service and streamed back through a fresh
StreamAssembler.

Only one message per conversation may be in flight; a second one while the
first is still validating or streaming is refused with ConversationBusyError.
"""
import asyncio
import logging
from typing import AsyncIterator, List, Optional

from clients.llm_provider import ChatSession, LLMProvider
from cns.core.message import ChatMessage
from cns.core.stream_assembler import StreamAssembler, StreamState
from cns.core.stream_events import (
    CompleteEvent,
    ErrorEvent,
    RejectedEvent,
    StreamEvent,
    TextEvent,
    UserMessageEvent,
    ValidatingEvent,
)
from cns.core.system_prompt import build_rejection_text, build_system_instruction, build_welcome_text
from cns.services.relevance_gate import RelevanceGate
from config.config import TopicConfig
from utils.errors import ConversationBusyError

logger = logging.getLogger(__name__)


class ConversationOrchestrator:
    """
    Drives one conversation for a single topic at a time.

    Args:
        topic: Initial topic
        gate: Relevance gate (shares the process-wide embedding loader)
        llm_provider: Generation service client
    """

    def __init__(self, topic: TopicConfig, gate: RelevanceGate, llm_provider: LLMProvider):
        self.gate = gate
        self.llm_provider = llm_provider
        self.topic: TopicConfig = topic
        self.session: Optional[ChatSession] = None
        self.messages: List[ChatMessage] = []
        self._busy = asyncio.Lock()

        self.set_topic(topic)

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    def set_topic(self, topic: TopicConfig) -> ChatMessage:
        """
        Switch the conversation to a topic.

        Clears the history down to a welcome message, opens a new generation
        session with the topic's system instruction and starts loading the
        embedding model in the background.

        Returns:
            The welcome message
        """
        if self.is_busy:
            raise ConversationBusyError("Cannot change topic while a message is being processed")

        self.topic = topic
        welcome = ChatMessage.agent(build_welcome_text(topic))
        self.messages = [welcome]
        self.session = self.llm_provider.create_session(build_system_instruction(topic))
        self.gate.loader.preload()

        logger.info(f"Conversation topic set to '{topic.topic}' ({len(topic.keywords)} keywords)")
        return welcome

    def _replace_message(self, message: ChatMessage) -> None:
        for index, existing in enumerate(self.messages):
            if existing.id == message.id:
                self.messages[index] = message
                return
        self.messages.append(message)

    async def _is_relevant(self, text: str) -> bool:
        if not self.topic.keywords:
            return True
        return await self.gate.evaluate(
            text,
            self.topic.keywords,
            threshold=self.topic.threshold,
            timeout_ms=self.topic.timeout_ms,
        )

    async def handle_user_message(self, text: str) -> AsyncIterator[StreamEvent]:
        """
        Process one user message, yielding events as it progresses.

        Raises:
            ValueError: If text is blank
            ConversationBusyError: If a message is already in flight
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Message cannot be empty")
        if self.is_busy:
            raise ConversationBusyError("A message is already being processed for this conversation")

        async with self._busy:
            user_message = ChatMessage.user(text)
            self.messages.append(user_message)
            yield UserMessageEvent(user_message)

            yield ValidatingEvent()
            if not await self._is_relevant(text):
                logger.info(f"Rejected off-topic message for '{self.topic.topic}': {text[:100]}")
                rejection = ChatMessage.agent(build_rejection_text(self.topic), is_error=True)
                self.messages.append(rejection)
                yield RejectedEvent(rejection)
                return

            assembler = StreamAssembler()
            self.messages.append(assembler.message)

            fragments = self.llm_provider.send_message(self.session, text)
            async for snapshot in assembler.consume(fragments):
                self._replace_message(snapshot)
                if assembler.state is StreamState.FAILED:
                    yield ErrorEvent(snapshot)
                else:
                    yield TextEvent(snapshot)

            if assembler.state is StreamState.COMPLETED:
                self._replace_message(assembler.message)
                yield CompleteEvent(assembler.message)
