class ChatError(Exception):
    """Base class for chat subsystem errors."""


class MalformedEnvelope(ChatError):
    """Inbound frame could not be parsed or is missing required fields."""


class InvalidMessage(ChatError, ValueError):
    """Message body or participants failed validation before persistence."""


class StorageUnavailable(ChatError):
    """Persistence layer failed. Callers may retry."""


class MessageNotFound(ChatError, LookupError):
    def __init__(self, message_id: str):
        super().__init__(f"Chat message {message_id} not found")
        self.message_id = message_id


class ChannelError(ChatError):
    """Transport-level failure on a live channel."""


class NotMessageRecipient(ChatError):
    """Only the receiver of a message may mark it read."""

    def __init__(self, message_id: str, user_id: str):
        super().__init__(f"User {user_id} is not the receiver of chat message {message_id}")
        self.message_id = message_id
        self.user_id = user_id
