"""Conversation data model, run aggregation and the store boundary."""

from .message_model import (
    Attachment,
    AudioPart,
    Conversation,
    FinishReason,
    GenerationState,
    ImagePart,
    Message,
    MessageKind,
    Role,
    TextPart,
    ToolCall,
    ToolResponse,
)
from .runs import Run, aggregate_runs
from .store import InMemoryMessageStore, MessageStore

__all__ = [
    "Attachment",
    "AudioPart",
    "Conversation",
    "FinishReason",
    "GenerationState",
    "ImagePart",
    "InMemoryMessageStore",
    "Message",
    "MessageKind",
    "MessageStore",
    "Role",
    "Run",
    "TextPart",
    "ToolCall",
    "ToolResponse",
    "aggregate_runs",
]
