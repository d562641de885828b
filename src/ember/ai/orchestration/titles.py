"""Conversation title generation."""

from __future__ import annotations

import re
from typing import Sequence

from ...chat.message_model import Message, Role
from ..ai_types import ChatService
from ..prompts import TITLE_INSTRUCTION
from .message_builder import drop_unanswered_tool_calls, filter_outbound

_TITLE_TAG_RE = re.compile(r"<title>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_QUOTES = "\"'`“”‘’"
_MAX_TITLE_LENGTH = 80


class TitleGenerator:
    """Requests a short title for a conversation, or nothing when there is no clear topic."""

    def __init__(self, chat: ChatService) -> None:
        self._chat = chat

    async def generate(self, model: str, history: Sequence[Message]) -> str | None:
        outbound = drop_unanswered_tool_calls(filter_outbound(history))
        if not outbound:
            return None
        instruction = Message.text_message(Role.USER, TITLE_INSTRUCTION)
        reply = await self._chat.complete(model, [*outbound, instruction])
        return parse_title(reply.text or "")


def parse_title(text: str) -> str | None:
    """Extract the title from ``<title>`` tags, accepting a bare line as a fallback.

    Returns ``None`` when the model produced no title.
    """

    match = _TITLE_TAG_RE.search(text)
    candidate = match.group(1) if match else _first_line(text)
    if match is None and "<title" in text.lower():
        return None
    title = " ".join(candidate.split()).strip(_QUOTES).strip()
    if not title:
        return None
    return title[:_MAX_TITLE_LENGTH]


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line
    return ""


__all__ = ["TitleGenerator", "parse_title"]
