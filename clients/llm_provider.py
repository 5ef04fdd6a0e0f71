"""
Generation service client.

Wraps the Anthropic async streaming API behind the two operations the chat
flow needs: create a session bound to a system instruction, and send a
message to it as an async stream of text fragments.
"""
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional

import anthropic

from config.config import GenerationConfig

logger = logging.getLogger(__name__)


@dataclass
class ChatSession:
    """
    Conversation state held for the generation service.

    history only contains completed exchanges; a turn whose stream failed is
    not recorded.
    """
    system_instruction: str
    history: List[Dict[str, str]] = field(default_factory=list)


class LLMProvider:
    """
    Streaming chat client for the generation service.

    Args:
        settings: Model, token and temperature settings
        client: Pre-built AsyncAnthropic client (tests pass a stub)
    """

    def __init__(self, settings: Optional[GenerationConfig] = None, client=None):
        self.settings = settings or GenerationConfig()
        if client is None:
            client = anthropic.AsyncAnthropic(
                api_key=self.settings.api_key,
                timeout=self.settings.timeout,
            )
        self.client = client
        logger.info(f"LLMProvider initialized with model {self.settings.model}")

    def create_session(self, system_instruction: str) -> ChatSession:
        if not system_instruction or not system_instruction.strip():
            raise ValueError("System instruction cannot be empty")
        return ChatSession(system_instruction=system_instruction)

    async def send_message(self, session: ChatSession, text: str) -> AsyncIterator[str]:
        """
        Stream the reply to text as fragments.

        Raises:
            anthropic.APIError: On transport or API failures, at any point
                of the iteration
        """
        messages = [*session.history, {"role": "user", "content": text}]
        fragments: List[str] = []

        async with self.client.messages.stream(
            model=self.settings.model,
            max_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
            system=session.system_instruction,
            messages=messages,
        ) as stream:
            async for fragment in stream.text_stream:
                fragments.append(fragment)
                yield fragment

        session.history.append({"role": "user", "content": text})
        session.history.append({"role": "assistant", "content": "".join(fragments)})
        logger.debug(f"Session history now {len(session.history)} turns")

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()
