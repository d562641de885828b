"""Tests for the conversation data model."""

from __future__ import annotations

import pytest

from ember.chat.message_model import (
    Conversation,
    FinishReason,
    GenerationState,
    ImagePart,
    Message,
    MessageKind,
    Role,
    TextPart,
    ToolCall,
    ToolResponse,
)


def test_tool_message_requires_response_linkage() -> None:
    with pytest.raises(ValueError):
        Message(role=Role.TOOL, contents=[TextPart("orphan")])

    with pytest.raises(ValueError):
        Message(role=Role.TOOL, contents=[TextPart("x")], tool_response=ToolResponse("call-1", ""))


def test_tool_result_carries_label_in_metadata() -> None:
    message = Message.tool_result("call-1", "search_web", "found", label="Searched web for 'x'")

    assert message.role is Role.TOOL
    assert message.tool_name == "search_web"
    assert message.tool_response == ToolResponse("call-1", "search_web")
    assert message.metadata["label"] == "Searched web for 'x'"
    assert message.text == "found"


def test_assistant_with_tool_calls_may_have_no_content() -> None:
    message = Message(role="assistant", tool_calls=[ToolCall("call-1", "search_web", '{"query": "x"}')])

    assert message.text is None
    assert message.has_tool_calls
    assert not message.is_empty


def test_content_order_is_preserved() -> None:
    image = ImagePart(data=b"\x89PNG", format="png")
    message = Message(role=Role.USER, contents=[TextPart("first"), image, TextPart("second")])

    assert message.text == "first\nsecond"
    assert message.images == [image]
    assert [part.type for part in message.contents or ()] == ["text", "image", "text"]


def test_apply_replaces_stream_fields_and_keeps_identity() -> None:
    base = Message(role=Role.ASSISTANT, id="m1", run_id="run-1", done=False)
    delta = Message(role=Role.ASSISTANT, contents=[TextPart("Hello!")], done=True, finish_reason="stop")

    updated = base.apply(delta)

    assert updated.id == "m1"
    assert updated.run_id == "run-1"
    assert updated.created == base.created
    assert updated.text == "Hello!"
    assert updated.done is True
    assert updated.finish_reason is FinishReason.STOP


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("stop", FinishReason.STOP),
        ("tool_calls", FinishReason.TOOL_CALLS),
        ("toolCalls", FinishReason.TOOL_CALLS),
        ("function_call", FinishReason.TOOL_CALLS),
        ("contentFilter", FinishReason.CONTENT_FILTER),
        (None, FinishReason.NONE),
        ("mystery", FinishReason.NONE),
    ],
)
def test_finish_reason_parse(raw, expected) -> None:
    assert FinishReason.parse(raw) is expected


def test_to_dict_summarizes_image_bytes() -> None:
    message = Message(role=Role.USER, contents=[ImagePart(data=b"1234", format="png")], kind=MessageKind.LOCAL)

    payload = message.to_dict()

    assert payload["kind"] == "local"
    assert payload["content"] == [{"type": "image", "format": "png", "url": None, "bytes": 4}]


def test_conversation_defaults() -> None:
    conversation = Conversation(tool_ids=["search_web", "search_web"], state="idle")

    assert conversation.suggestions is None
    assert conversation.state is GenerationState.IDLE
    assert conversation.tool_ids == {"search_web"}
    assert conversation.last_message is None
