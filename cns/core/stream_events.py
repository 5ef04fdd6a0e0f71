"""
Events emitted while a conversation handles one user message.

Transports (websocket, CLI) translate these into their own frames.
"""
from dataclasses import dataclass
from typing import Any, Dict

from cns.core.message import ChatMessage


@dataclass(frozen=True)
class StreamEvent:
    type = "event"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}


@dataclass(frozen=True)
class UserMessageEvent(StreamEvent):
    message: ChatMessage
    type = "user"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message.to_dict()}


@dataclass(frozen=True)
class ValidatingEvent(StreamEvent):
    type = "validating"


@dataclass(frozen=True)
class RejectedEvent(StreamEvent):
    message: ChatMessage
    type = "rejected"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message.to_dict()}


@dataclass(frozen=True)
class TextEvent(StreamEvent):
    """Cumulative agent text after one more fragment."""
    message: ChatMessage
    type = "text"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message_id": self.message.id, "content": self.message.text}


@dataclass(frozen=True)
class CompleteEvent(StreamEvent):
    message: ChatMessage
    type = "complete"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message.to_dict()}


@dataclass(frozen=True)
class ErrorEvent(StreamEvent):
    message: ChatMessage
    type = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message.to_dict()}
