"""Shared typing contracts for model and tool services."""

from __future__ import annotations

from typing import Any, AsyncIterator, Mapping, Protocol, Sequence, runtime_checkable

from ..chat.message_model import Message

ToolChoice = str | Mapping[str, Any]
"""Either ``"auto"``/``"none"``/``"required"``, a tool name, or a raw provider mapping."""


@runtime_checkable
class ChatService(Protocol):
    """Completion capability bound to model identifiers."""

    async def complete(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        tool_choice: ToolChoice | None = None,
    ) -> Message:
        """Return one finished assistant message."""
        ...

    def complete_stream(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        tool_choice: ToolChoice | None = None,
    ) -> AsyncIterator[Message]:
        """Yield cumulative snapshots of one assistant message.

        Each yielded message carries everything received so far; the last
        snapshot has ``done`` set.
        """
        ...


@runtime_checkable
class ImageService(Protocol):
    """Image generation capability."""

    async def generate_images(self, model: str, prompt: str, *, count: int = 1) -> list[bytes]:
        ...


@runtime_checkable
class ToolExecutor(Protocol):
    """Executes one tool call and answers it with role=tool messages."""

    async def dispatch(self, tool_call_id: str, function_name: str, arguments: str) -> list[Message]:
        ...

    def tool_definitions(self, tool_ids: Sequence[str]) -> list[dict[str, Any]]:
        """Provider-ready definitions for the enabled tool ids."""
        ...


__all__ = ["ChatService", "ImageService", "ToolChoice", "ToolExecutor"]
