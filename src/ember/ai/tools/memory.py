"""The ``remember`` tool and a simple memory store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol

from ...chat.message_model import new_id
from ..orchestration.tools.types import ToolOutput, ToolSpec, Toolbox

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Memory:
    content: str
    id: str = field(default_factory=new_id)
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MemoryStore(Protocol):
    async def upsert(self, memory: Memory) -> None:
        ...


class InMemoryMemoryStore:
    """Keeps memories for the lifetime of the process, skipping exact duplicates."""

    def __init__(self) -> None:
        self._memories: list[Memory] = []
        self._lock = asyncio.Lock()

    async def upsert(self, memory: Memory) -> None:
        async with self._lock:
            for index, existing in enumerate(self._memories):
                if existing.id == memory.id or existing.content == memory.content:
                    self._memories[index] = memory
                    return
            self._memories.append(memory)

    def items(self) -> list[Memory]:
        return list(self._memories)

    def __len__(self) -> int:
        return len(self._memories)


REMEMBER_SPEC = ToolSpec(
    tool=Toolbox.REMEMBER,
    description=(
        "Return a list of useful things to remember about the user for future conversations. "
        "Some examples include names, important dates, facts about the user, and interests."
    ),
    parameters={
        "type": "object",
        "properties": {
            "items": {
                "type": "array",
                "description": "Short descriptions of what to remember.",
                "items": {"type": "string"},
            },
        },
        "required": ["items"],
    },
)


class RememberTool:
    spec = REMEMBER_SPEC

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        items = [str(item).strip() for item in arguments.get("items", ()) if str(item).strip()]
        for item in items:
            await self._store.upsert(Memory(content=item))
        LOGGER.debug("Saved %s memory item(s)", len(items))
        return ToolOutput("Saved memory", label="Saved memory")


__all__ = ["InMemoryMemoryStore", "Memory", "MemoryStore", "REMEMBER_SPEC", "RememberTool"]
