"""
Assembles a streamed agent reply into message snapshots.

One StreamAssembler serves exactly one request:

    IDLE --start()--> STREAMING --complete()--> COMPLETED
                          |
                          +------fail()------> FAILED

apply() appends a fragment and returns the cumulative snapshot. consume()
drives the reducer over an async fragment source and always terminates:
an exception from the source moves the assembler to FAILED and yields a last
snapshot carrying STREAM_ERROR_TEXT with is_error set.
"""
import logging
from enum import Enum
from typing import AsyncIterable, AsyncIterator, List, Optional

from cns.core.message import ChatMessage

logger = logging.getLogger(__name__)

STREAM_ERROR_TEXT = "I'm having trouble connecting right now. Please check your API key and try again."


class StreamState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class StreamAssembler:

    def __init__(self, message_id: Optional[str] = None, error_text: str = STREAM_ERROR_TEXT):
        self.state = StreamState.IDLE
        self.message = ChatMessage.agent(message_id=message_id)
        self.error_text = error_text
        self.error: Optional[BaseException] = None
        self._fragments: List[str] = []

    @property
    def text(self) -> str:
        """Concatenation of every fragment received so far."""
        return "".join(self._fragments)

    @property
    def is_terminal(self) -> bool:
        return self.state in (StreamState.COMPLETED, StreamState.FAILED)

    def _require(self, state: StreamState, action: str) -> None:
        if self.state is not state:
            raise RuntimeError(f"Cannot {action} a stream in state {self.state.value}")

    def start(self) -> ChatMessage:
        self._require(StreamState.IDLE, "start")
        self.state = StreamState.STREAMING
        return self.message

    def apply(self, fragment: Optional[str]) -> ChatMessage:
        self._require(StreamState.STREAMING, "append to")
        self._fragments.append(fragment or "")
        self.message = self.message.with_text(self.text)
        return self.message

    def complete(self) -> ChatMessage:
        self._require(StreamState.STREAMING, "complete")
        self.state = StreamState.COMPLETED
        return self.message

    def fail(self, error: BaseException) -> ChatMessage:
        self._require(StreamState.STREAMING, "fail")
        self.state = StreamState.FAILED
        self.error = error
        self.message = self.message.with_text(self.error_text, is_error=True)
        return self.message

    async def consume(self, fragments: AsyncIterable[str]) -> AsyncIterator[ChatMessage]:
        """
        Yield one snapshot per fragment, in arrival order.

        A completed stream yields nothing extra; its last snapshot already
        holds the full text. A failed stream yields the error snapshot last.
        """
        self.start()
        try:
            async for fragment in fragments:
                yield self.apply(fragment)
        except Exception as e:
            logger.error(f"Generation stream failed after {len(self._fragments)} fragments: {e}", exc_info=True)
            yield self.fail(e)
            return
        self.complete()
