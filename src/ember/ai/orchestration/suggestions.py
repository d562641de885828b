"""Suggested-reply generation for conversations."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Sequence

from ...chat.message_model import Message, Role
from ...core.errors import DecodeError
from ..ai_types import ChatService
from ..prompts import suggestions_instruction
from .message_builder import drop_unanswered_tool_calls, filter_outbound

LOGGER = logging.getLogger(__name__)

_FENCE_OPEN = "```json"
_FENCE_CLOSE = "```"


class SuggestionGenerator:
    """Asks the model for a short list of replies the user might send next."""

    def __init__(self, chat: ChatService, *, max_suggestions: int = 3) -> None:
        self._chat = chat
        self._max_suggestions = max(1, max_suggestions)

    @property
    def max_suggestions(self) -> int:
        return self._max_suggestions

    async def generate(self, model: str, history: Sequence[Message]) -> list[str]:
        """Request suggestions for ``history``.

        Args:
            model: Model identifier for the single non-streaming request.
            history: Conversation timeline; excluded kinds are filtered out.

        Returns:
            At most ``max_suggestions`` unique suggestion strings.

        Raises:
            DecodeError: The reply was not a JSON array of strings.
        """
        messages = self.build_messages(history)
        if not messages:
            return []
        reply = await self._chat.complete(model, messages)
        return parse_suggestions(reply.text or "", self._max_suggestions)

    def build_messages(self, history: Sequence[Message]) -> list[Message]:
        outbound = drop_unanswered_tool_calls(filter_outbound(history))
        if not outbound:
            return []
        instruction = Message.text_message(Role.USER, suggestions_instruction(self._max_suggestions))
        return [*outbound, instruction]


def strip_code_fence(text: str) -> str:
    """Remove a leading ```json marker and/or a trailing ``` marker."""

    cleaned = text.strip()
    if cleaned.startswith(_FENCE_OPEN):
        cleaned = cleaned[len(_FENCE_OPEN):]
    if cleaned.endswith(_FENCE_CLOSE):
        cleaned = cleaned[: -len(_FENCE_CLOSE)]
    return cleaned.strip()


def parse_suggestions(text: str, max_suggestions: int = 3) -> list[str]:
    """Decode a model reply into suggestions.

    Raises:
        DecodeError: The reply is not valid JSON or not a list.
    """
    cleaned = strip_code_fence(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Suggestions were not valid JSON: {exc.msg}", raw=text) from exc

    if isinstance(parsed, dict) and isinstance(parsed.get("suggestions"), list):
        parsed = parsed["suggestions"]
    if not isinstance(parsed, list):
        raise DecodeError("Suggestions must be a JSON array of strings", raw=text)
    return sanitize_suggestions(parsed, max_suggestions)


def sanitize_suggestions(raw_items: Iterable[Any], max_suggestions: int) -> list[str]:
    """Deduplicate and limit suggestion items.

    Args:
        raw_items: Raw suggestion values from parsing.
        max_suggestions: Maximum suggestions to return.

    Returns:
        Sanitized list of unique suggestion strings.
    """
    sanitized: list[str] = []
    seen: set[str] = set()
    limit = max(1, max_suggestions)
    for item in raw_items:
        if item is None or isinstance(item, (dict, list)):
            continue
        text = str(item).strip()
        if not text or text in seen:
            continue
        sanitized.append(text)
        seen.add(text)
        if len(sanitized) >= limit:
            break
    return sanitized


__all__ = ["SuggestionGenerator", "parse_suggestions", "sanitize_suggestions", "strip_code_fence"]
