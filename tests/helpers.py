"""Shared test helpers and stub services.

Import from here instead of duplicating fakes in individual test files.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Iterable, Mapping, Sequence

from ember.chat.message_model import (
    Conversation,
    FinishReason,
    Message,
    Role,
    TextPart,
    ToolCall,
)
from ember.ai.orchestration.tools import ToolDispatcher, ToolOutput, ToolRegistry, ToolSpec, Toolbox


def snapshots(*texts: str, finish_reason: FinishReason = FinishReason.STOP) -> list[Message]:
    """Cumulative stream snapshots; only the last one is ``done``."""

    items: list[Message] = []
    for index, text in enumerate(texts):
        last = index == len(texts) - 1
        items.append(
            Message(
                role=Role.ASSISTANT,
                contents=[TextPart(text)],
                done=last,
                finish_reason=finish_reason if last else FinishReason.NONE,
            )
        )
    return items


def tool_call_reply(name: str, arguments: str = "{}", call_id: str = "call-1") -> Message:
    return Message(
        role=Role.ASSISTANT,
        tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)],
        finish_reason=FinishReason.TOOL_CALLS,
    )


def text_reply(text: str) -> Message:
    return Message.text_message(Role.ASSISTANT, text, finish_reason=FinishReason.STOP)


class FakeChatService:
    """Scripted ``ChatService``.

    ``replies`` feed :meth:`complete`; ``streams`` feed :meth:`complete_stream`.
    A script entry that is an exception is raised; an :class:`asyncio.Event`
    inside a stream script pauses the stream until it is set.
    """

    def __init__(
        self,
        *,
        replies: Iterable[Message | BaseException] = (),
        streams: Iterable[Sequence[Any] | BaseException] = (),
    ) -> None:
        self.replies = list(replies)
        self.streams = list(streams)
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        tool_choice: Any = None,
    ) -> Message:
        self._record(model, messages, tools, tool_choice, streamed=False)
        if not self.replies:
            raise AssertionError("unexpected complete() call")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def complete_stream(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        tool_choice: Any = None,
    ) -> AsyncIterator[Message]:
        self._record(model, messages, tools, tool_choice, streamed=True)
        if not self.streams:
            raise AssertionError("unexpected complete_stream() call")
        script = self.streams.pop(0)
        if isinstance(script, BaseException):
            raise script
        for item in script:
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            if isinstance(item, BaseException):
                raise item
            yield item

    def _record(self, model, messages, tools, tool_choice, *, streamed: bool) -> None:
        self.calls.append(
            {
                "model": model,
                "messages": list(messages),
                "tools": list(tools or ()),
                "tool_choice": tool_choice,
                "streamed": streamed,
            }
        )


class FakeImageService:
    def __init__(self, images: Sequence[bytes] = (b"png-bytes",), error: BaseException | None = None) -> None:
        self.images = list(images)
        self.error = error
        self.calls: list[tuple[str, str, int]] = []

    async def generate_images(self, model: str, prompt: str, *, count: int = 1) -> list[bytes]:
        self.calls.append((model, prompt, count))
        if self.error is not None:
            raise self.error
        return list(self.images)


def search_dispatcher(calls: list[dict[str, Any]] | None = None) -> ToolDispatcher:
    """Dispatcher with only ``search_web`` registered, recording its arguments."""

    registry = ToolRegistry()

    def _search(arguments: Mapping[str, Any]) -> ToolOutput:
        if calls is not None:
            calls.append(dict(arguments))
        return ToolOutput(f"results for {arguments['query']}", label=f"Searched web for '{arguments['query']}'")

    registry.register_function(
        ToolSpec(
            tool=Toolbox.SEARCH_WEB,
            description="Search the web.",
            parameters={
                "type": "object",
                "properties": {"query": {"type": "string"}},
                "required": ["query"],
            },
        ),
        _search,
    )
    return ToolDispatcher(registry, require_complete=False)


def make_conversation(**kwargs: Any) -> Conversation:
    kwargs.setdefault("model_id", "test-model")
    return Conversation(**kwargs)
