"""Tests for the tool-call resolution loop."""

from __future__ import annotations

from typing import Any

import pytest

from ember.ai.orchestration.cycles import CancellationToken
from ember.ai.orchestration.tool_loop import ToolCallLoop
from ember.chat.message_model import Message, Role, ToolCall
from ember.core.errors import GenerationCancelled, ToolLoopExceededError

from helpers import search_dispatcher, text_reply, tool_call_reply


def _scripted(*replies: Message):
    pending = list(replies)
    choices: list[Any] = []

    async def request(choice, round_index: int) -> Message:
        choices.append(choice)
        return pending.pop(0)

    return request, choices


@pytest.mark.asyncio
async def test_only_first_request_carries_forced_choice() -> None:
    request, choices = _scripted(
        tool_call_reply("search_web", '{"query": "a"}', call_id="c1"),
        tool_call_reply("search_web", '{"query": "b"}', call_id="c2"),
        text_reply("done"),
    )
    persisted: list[Message] = []

    async def persist(message: Message) -> None:
        persisted.append(message)

    outcome = await ToolCallLoop(search_dispatcher()).run(request, persist, run_id="r1", tool_choice="search_web")

    assert choices == ["search_web", None, None]
    assert outcome.rounds == 2
    assert outcome.message.text == "done"
    assert [message.tool_response.tool_call_id for message in persisted] == ["c1", "c2"]
    assert all(message.run_id == "r1" for message in persisted)


@pytest.mark.asyncio
async def test_calls_in_one_round_are_answered_in_order() -> None:
    searches: list[dict[str, Any]] = []
    reply = Message(
        role=Role.ASSISTANT,
        tool_calls=[
            ToolCall("c1", "search_web", '{"query": "first"}'),
            ToolCall("c2", "mystery_tool", "{}"),
            ToolCall("c3", "search_web", '{"query": "third"}'),
        ],
    )
    persisted: list[Message] = []

    async def persist(message: Message) -> None:
        persisted.append(message)

    results = await ToolCallLoop(search_dispatcher(searches)).dispatch_round(reply, persist, run_id="r1")

    assert [message.tool_response.tool_call_id for message in results] == ["c1", "c2", "c3"]
    assert results == persisted
    assert [item["query"] for item in searches] == ["first", "third"]


@pytest.mark.asyncio
async def test_round_cap_raises() -> None:
    request, _ = _scripted(
        tool_call_reply("search_web", '{"query": "a"}', call_id="c1"),
        tool_call_reply("search_web", '{"query": "b"}', call_id="c2"),
        tool_call_reply("search_web", '{"query": "c"}', call_id="c3"),
    )

    async def persist(message: Message) -> None:
        return None

    with pytest.raises(ToolLoopExceededError) as excinfo:
        await ToolCallLoop(search_dispatcher(), max_rounds=2).run(request, persist, run_id="r1")

    assert excinfo.value.rounds == 2


@pytest.mark.asyncio
async def test_missing_executor_answers_unknown_tool() -> None:
    persisted: list[Message] = []

    async def persist(message: Message) -> None:
        persisted.append(message)

    await ToolCallLoop(None).dispatch_round(tool_call_reply("search_web"), persist)

    assert persisted[0].text == "Unknown tool."


@pytest.mark.asyncio
async def test_cancellation_checked_before_each_dispatch() -> None:
    token = CancellationToken()
    token.cancel()

    async def persist(message: Message) -> None:
        raise AssertionError("nothing should be persisted")

    with pytest.raises(GenerationCancelled):
        await ToolCallLoop(search_dispatcher()).dispatch_round(
            tool_call_reply("search_web", '{"query": "x"}'), persist, token=token
        )
