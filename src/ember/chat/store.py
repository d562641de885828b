"""Conversation store contract and an in-memory implementation.

The store is the single owner of conversation state. Readers always receive
copies; every change goes back through an upsert so there is exactly one
writer of truth per conversation id.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol, runtime_checkable

from ..core.errors import MissingConversationError
from .message_model import Conversation, Message

LOGGER = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset(
    f.name for f in fields(Conversation) if f.name not in {"id", "messages", "created", "modified"}
)


@runtime_checkable
class MessageStore(Protocol):
    """Persistence boundary consumed by the orchestrator."""

    def get(self, conversation_id: str) -> Conversation | None:
        """Return a copy of the conversation or ``None`` when absent."""
        ...

    async def upsert(self, conversation: Conversation) -> Conversation:
        """Insert or replace a whole conversation."""
        ...

    async def upsert_message(self, message: Message, conversation_id: str) -> Message:
        """Insert ``message`` or replace the message with the same id in place."""
        ...

    async def update(self, conversation_id: str, **changes: Any) -> Conversation:
        """Atomically set individual conversation fields (title, state, ...)."""
        ...

    async def delete(self, conversation_id: str) -> bool:
        ...


class InMemoryMessageStore:
    """Process-local store that hands out deep copies.

    Mutations are serialized with an :class:`asyncio.Lock` so read-modify-write
    sequences from concurrent tasks never interleave.
    """

    def __init__(self, conversations: Iterable[Conversation] | None = None) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._lock = asyncio.Lock()
        for conversation in conversations or ():
            self._conversations[conversation.id] = copy.deepcopy(conversation)

    def get(self, conversation_id: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        return copy.deepcopy(conversation)

    def list_conversations(self) -> list[Conversation]:
        """Return copies of all conversations, most recently modified first."""

        ordered = sorted(self._conversations.values(), key=lambda item: item.modified, reverse=True)
        return [copy.deepcopy(item) for item in ordered]

    async def upsert(self, conversation: Conversation) -> Conversation:
        async with self._lock:
            stored = copy.deepcopy(conversation)
            existing = self._conversations.get(stored.id)
            if existing is not None:
                stored.created = existing.created
            stored.modified = _utcnow()
            self._conversations[stored.id] = stored
            LOGGER.debug("Upserted conversation %s (%s message(s))", stored.id, len(stored.messages))
            return copy.deepcopy(stored)

    async def upsert_message(self, message: Message, conversation_id: str) -> Message:
        async with self._lock:
            conversation = self._require(conversation_id)
            stored = copy.deepcopy(message)
            for index, existing in enumerate(conversation.messages):
                if existing.id == stored.id:
                    conversation.messages[index] = stored
                    break
            else:
                conversation.messages.append(stored)
            conversation.modified = _utcnow()
            return copy.deepcopy(stored)

    async def update(self, conversation_id: str, **changes: Any) -> Conversation:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown conversation field(s): {sorted(unknown)}")
        async with self._lock:
            conversation = self._require(conversation_id)
            for name, value in changes.items():
                setattr(conversation, name, copy.deepcopy(value))
            conversation.modified = _utcnow()
            return copy.deepcopy(conversation)

    async def delete(self, conversation_id: str) -> bool:
        async with self._lock:
            return self._conversations.pop(conversation_id, None) is not None

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise MissingConversationError(conversation_id)
        return conversation

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["InMemoryMessageStore", "MessageStore"]
