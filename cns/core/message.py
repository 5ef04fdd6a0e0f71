"""
Chat message value object.

Messages are frozen. An agent reply that is still streaming is represented by
a sequence of snapshots, each a new ChatMessage built with with_text(), so a
snapshot handed to a consumer never changes afterwards.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict
from uuid import uuid4

from utils.timezone_utils import format_utc_iso, utc_now


class Role(Enum):
    USER = "user"
    AGENT = "agent"


def new_message_id() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    text: str
    id: str = field(default_factory=new_message_id)
    timestamp: datetime = field(default_factory=utc_now)
    is_error: bool = False

    @classmethod
    def user(cls, text: str) -> "ChatMessage":
        return cls(role=Role.USER, text=text)

    @classmethod
    def agent(cls, text: str = "", is_error: bool = False, message_id: str = None) -> "ChatMessage":
        return cls(role=Role.AGENT, text=text, is_error=is_error, id=message_id or new_message_id())

    def with_text(self, text: str, is_error: bool = None) -> "ChatMessage":
        if self.role is Role.USER:
            raise ValueError("User messages are immutable once created")
        return replace(self, text=text, is_error=self.is_error if is_error is None else is_error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "text": self.text,
            "timestamp": format_utc_iso(self.timestamp),
            "is_error": self.is_error,
        }
