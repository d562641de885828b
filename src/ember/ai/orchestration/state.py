"""Generation state machine backed by the conversation store."""

from __future__ import annotations

import logging
from typing import Mapping

from ...chat.message_model import Conversation, GenerationState
from ...chat.store import MessageStore
from ...core.errors import InvalidStateTransitionError, MissingConversationError, MissingModelError

LOGGER = logging.getLogger(__name__)

_IDLE = GenerationState.IDLE
_PROCESSING = GenerationState.PROCESSING
_STREAMING = GenerationState.STREAMING
_SUGGESTING = GenerationState.SUGGESTING

# Any state may return to idle; that edge is handled separately.
_TRANSITIONS: Mapping[GenerationState, frozenset[GenerationState]] = {
    _IDLE: frozenset({_PROCESSING, _SUGGESTING}),
    _PROCESSING: frozenset({_STREAMING, _SUGGESTING}),
    _STREAMING: frozenset({_PROCESSING, _SUGGESTING}),
    _SUGGESTING: frozenset(),
}


def can_transition(current: GenerationState, target: GenerationState) -> bool:
    current = GenerationState(current)
    target = GenerationState(target)
    if current is target or target is _IDLE:
        return True
    return target in _TRANSITIONS[current]


class GenerationStateMachine:
    """Validates and persists per-conversation generation state.

    The state itself lives on the stored conversation; this class never keeps
    a copy of it between calls.
    """

    def __init__(self, store: MessageStore, *, default_model: str | None = None) -> None:
        self._store = store
        self._default_model = default_model

    def require_conversation(self, conversation_id: str) -> Conversation:
        conversation = self._store.get(conversation_id)
        if conversation is None:
            raise MissingConversationError(conversation_id)
        return conversation

    def resolve_model(self, conversation: Conversation) -> str:
        """Return the conversation's model, falling back to the engine default."""

        model = conversation.model_id or self._default_model
        if not model:
            raise MissingModelError(conversation.id)
        return model

    def current(self, conversation_id: str) -> GenerationState:
        return self.require_conversation(conversation_id).state

    async def transition(self, conversation_id: str, target: GenerationState) -> GenerationState:
        """Move ``conversation_id`` to ``target``.

        Self-transitions are no-ops. Raises :class:`InvalidStateTransitionError`
        for edges the machine does not allow.
        """

        target = GenerationState(target)
        current = self.current(conversation_id)
        if current is target:
            return current
        if not can_transition(current, target):
            raise InvalidStateTransitionError(current.value, target.value)
        await self._store.update(conversation_id, state=target)
        LOGGER.debug("Conversation %s: %s -> %s", conversation_id, current.value, target.value)
        return target

    async def begin(self, conversation_id: str) -> tuple[Conversation, str]:
        """Enter ``processing`` after checking the conversation and its model exist."""

        conversation = self.require_conversation(conversation_id)
        model = self.resolve_model(conversation)
        await self.transition(conversation_id, _PROCESSING)
        return conversation, model

    async def reset(self, conversation_id: str) -> None:
        """Force the conversation back to idle if it still exists."""

        conversation = self._store.get(conversation_id)
        if conversation is None or conversation.state is _IDLE:
            return
        await self._store.update(conversation_id, state=_IDLE)
        LOGGER.debug("Conversation %s: %s -> idle (reset)", conversation_id, conversation.state.value)


__all__ = ["GenerationStateMachine", "can_transition"]
