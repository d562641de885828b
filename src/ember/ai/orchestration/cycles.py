"""Per-conversation cycle ownership and cooperative cancellation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator

from ...chat.message_model import Message
from ...core.errors import ConversationBusyError, GenerationCancelled

LOGGER = logging.getLogger(__name__)


class CancellationToken:
    """Flag checked at every resumption point of a cycle."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationCancelled()


@dataclass(slots=True)
class Cycle:
    """The single authoritative unit of work running for a conversation."""

    conversation_id: str
    kind: str
    token: CancellationToken = field(default_factory=CancellationToken)
    task: asyncio.Task | None = None
    partial: Message | None = None


class CycleRegistry:
    """Map of conversation id to its in-flight cycle.

    Acquisition and release happen on the event loop thread without awaiting,
    so no lock is needed.
    """

    def __init__(self) -> None:
        self._cycles: dict[str, Cycle] = {}

    def active(self, conversation_id: str) -> Cycle | None:
        return self._cycles.get(conversation_id)

    def acquire(self, conversation_id: str, kind: str) -> Cycle:
        existing = self._cycles.get(conversation_id)
        if existing is not None:
            raise ConversationBusyError(conversation_id, existing.kind)
        cycle = Cycle(conversation_id=conversation_id, kind=kind, task=asyncio.current_task())
        self._cycles[conversation_id] = cycle
        LOGGER.debug("Cycle %s started for conversation %s", kind, conversation_id)
        return cycle

    def release(self, cycle: Cycle) -> None:
        if self._cycles.get(cycle.conversation_id) is cycle:
            del self._cycles[cycle.conversation_id]
            LOGGER.debug("Cycle %s finished for conversation %s", cycle.kind, cycle.conversation_id)

    @contextlib.asynccontextmanager
    async def claim(self, conversation_id: str, kind: str) -> AsyncIterator[Cycle]:
        cycle = self.acquire(conversation_id, kind)
        try:
            yield cycle
        finally:
            self.release(cycle)

    def cancel(self, conversation_id: str) -> Cycle | None:
        """Flag the active cycle and cancel its task unless it is the caller's own."""

        cycle = self._cycles.get(conversation_id)
        if cycle is None:
            return None
        cycle.token.cancel()
        task = cycle.task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        LOGGER.debug("Cancelled %s cycle for conversation %s", cycle.kind, conversation_id)
        return cycle

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._cycles

    def __len__(self) -> int:
        return len(self._cycles)


__all__ = ["CancellationToken", "Cycle", "CycleRegistry"]
