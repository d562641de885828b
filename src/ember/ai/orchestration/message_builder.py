"""Builds the outbound message history for model requests."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Mapping, Sequence

from ...chat.message_model import Conversation, Message, MessageKind, Role, TextPart
from ..prompts import render_template

_EXCLUDED_KINDS = frozenset({MessageKind.ERROR, MessageKind.LOCAL})


def filter_outbound(messages: Iterable[Message]) -> list[Message]:
    """Drop messages a model must never see.

    Error and local messages are user-facing only, and messages with neither
    content nor tool calls carry nothing to send.
    """

    return [message for message in messages if message.kind not in _EXCLUDED_KINDS and not message.is_empty]


def drop_unanswered_tool_calls(messages: Sequence[Message]) -> list[Message]:
    """Remove tool calls that no later tool message answers.

    A cycle that stops at the round cap or on cancellation can leave an
    assistant message whose calls were never dispatched; providers reject such
    histories.
    """

    answered = {message.tool_response.tool_call_id for message in messages if message.tool_response is not None}
    cleaned: list[Message] = []
    for message in messages:
        if message.tool_calls and any(call.id not in answered for call in message.tool_calls):
            kept = [call for call in message.tool_calls if call.id in answered]
            message = replace(message, tool_calls=kept or None)
            if message.is_empty:
                continue
        cleaned.append(message)
    return cleaned


def build_history(
    conversation: Conversation,
    *,
    context: Mapping[str, str] | None = None,
    extra: Sequence[Message] = (),
) -> list[Message]:
    """Return instructions + filtered timeline + ``extra`` ready for a request."""

    history: list[Message] = []
    instructions = render_template(conversation.instructions, context).strip()
    if instructions:
        history.append(
            Message(
                role=Role.SYSTEM,
                contents=[TextPart(instructions)],
                kind=MessageKind.INSTRUCTION,
                id=f"{conversation.id}:instructions",
            )
        )
    history.extend(drop_unanswered_tool_calls(filter_outbound(conversation.messages)))
    history.extend(extra)
    return history


__all__ = ["build_history", "drop_unanswered_tool_calls", "filter_outbound"]
