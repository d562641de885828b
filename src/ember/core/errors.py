"""Error taxonomy shared by the conversation engine.

Errors fall into four groups:

* missing references (conversation, model, service) raised before any mutation
* transport/service failures wrapped in :class:`GenerationError` and attached to
  the conversation instead of propagating to the UI
* decode failures of auxiliary generators (:class:`DecodeError`), logged only
* tool failures, which never leave the dispatcher (they become tool messages)
"""

from __future__ import annotations

__all__ = [
    "EmberError",
    "MissingConversationError",
    "MissingModelError",
    "MissingServiceError",
    "ConversationBusyError",
    "InvalidStateTransitionError",
    "GenerationError",
    "ToolLoopExceededError",
    "DecodeError",
    "GenerationCancelled",
]


class EmberError(Exception):
    """Base class for engine errors."""


class MissingConversationError(EmberError, LookupError):
    """Raised when a conversation id is not present in the store."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Missing conversation '{conversation_id}'")


class MissingModelError(EmberError):
    """Raised when neither the conversation nor the engine names a model."""

    def __init__(self, conversation_id: str | None = None) -> None:
        self.conversation_id = conversation_id
        detail = f" for conversation '{conversation_id}'" if conversation_id else ""
        super().__init__(f"Missing model{detail}")


class MissingServiceError(EmberError):
    """Raised when a required model service was never configured."""

    def __init__(self, service: str) -> None:
        self.service = service
        super().__init__(f"Missing '{service}' service")


class ConversationBusyError(EmberError):
    """Raised when a second generation cycle starts on a busy conversation."""

    def __init__(self, conversation_id: str, active: str | None = None) -> None:
        self.conversation_id = conversation_id
        self.active = active
        suffix = f" ({active} in flight)" if active else ""
        super().__init__(f"Conversation '{conversation_id}' already has an active cycle{suffix}")


class InvalidStateTransitionError(EmberError):
    """Raised when the generation state machine rejects a transition."""

    def __init__(self, current: object, target: object) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition from {current!s} to {target!s}")


class GenerationError(EmberError):
    """A model request failed; the message is shown to the user."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class ToolLoopExceededError(GenerationError):
    """The model kept requesting tools beyond the configured round cap."""

    def __init__(self, rounds: int) -> None:
        self.rounds = rounds
        super().__init__(f"Tool loop exceeded after {rounds} round(s)")


class DecodeError(EmberError, ValueError):
    """Output of an auxiliary generator (suggestions, title) was not decodable."""

    def __init__(self, message: str, *, raw: str | None = None) -> None:
        self.raw = raw
        super().__init__(message)


class GenerationCancelled(EmberError):
    """Cooperative cancellation signal raised at a resumption point."""
