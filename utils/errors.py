"""Exceptions raised by the topic guard service."""


class TopicConfigError(ValueError):
    """Raised when a topic configuration is missing fields or malformed."""


class ConversationBusyError(RuntimeError):
    """
    Raised when a conversation receives a new message while a previous one
    is still being validated or streamed.
    """
