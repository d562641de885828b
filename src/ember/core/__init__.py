"""Core error types shared across the engine."""

from .errors import (
    ConversationBusyError,
    DecodeError,
    EmberError,
    GenerationCancelled,
    GenerationError,
    InvalidStateTransitionError,
    MissingConversationError,
    MissingModelError,
    MissingServiceError,
    ToolLoopExceededError,
)

__all__ = [
    "ConversationBusyError",
    "DecodeError",
    "EmberError",
    "GenerationCancelled",
    "GenerationError",
    "InvalidStateTransitionError",
    "MissingConversationError",
    "MissingModelError",
    "MissingServiceError",
    "ToolLoopExceededError",
]
