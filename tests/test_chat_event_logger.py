"""Tests for the chat event logging helpers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ember.ai.orchestration import GenerationOrchestrator
from ember.ai.orchestration.event_log import ChatEventLogger, NullChatEventLogRun
from ember.chat.message_model import Message, Role
from ember.chat.store import InMemoryMessageStore

from helpers import FakeChatService, make_conversation, search_dispatcher, snapshots, tool_call_reply


def _read_entries(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def test_chat_event_logger_writes_entries(tmp_path: Path) -> None:
    logger = ChatEventLogger(enabled=True, base_dir=tmp_path)
    run = logger.start_run(
        run_id="run-test",
        conversation_id="conv-1",
        model="gpt-test",
        history=[{"role": "user", "content": "Hi"}],
    )

    with run:
        run.log_request(turn_index=0, model="gpt-test", message_count=1, tool_names=["search_web"])
        run.log_assistant_message(turn_index=0, message={"role": "assistant", "content": "Working"})
        run.log_tool_batch(turn_index=1, messages=[{"role": "tool", "content": b"\x00\x01"}])
        run.log_completion(response_text="Done", tool_rounds=1)

    log_files = list(tmp_path.glob("*.jsonl"))
    assert len(log_files) == 1
    entries = _read_entries(log_files[0])
    assert [entry["event"] for entry in entries] == ["start", "request", "assistant", "tools", "completion"]
    assert entries[0]["conversation_id"] == "conv-1"
    assert entries[3]["tool_messages"][0]["content"] == "<2 bytes>"
    assert entries[-1]["status"] == "success"


def test_chat_event_logger_records_failure_on_exception(tmp_path: Path) -> None:
    logger = ChatEventLogger(enabled=True, base_dir=tmp_path)
    run = logger.start_run(run_id="run-fail", conversation_id="c", model="m")

    with pytest.raises(RuntimeError):
        with run:
            raise RuntimeError("stream dropped")

    entries = _read_entries(next(tmp_path.glob("*.jsonl")))
    assert entries[-1]["event"] == "failure"
    assert entries[-1]["message"] == "stream dropped"
    assert entries[-1]["error_type"] == "RuntimeError"


def test_chat_event_logger_disabled_is_noop(tmp_path: Path) -> None:
    logger = ChatEventLogger(enabled=False, base_dir=tmp_path)
    run = logger.start_run(run_id="no-log", conversation_id="c", model="m")

    assert isinstance(run, NullChatEventLogRun)
    with run:
        run.log_completion(response_text="", tool_rounds=0)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_orchestrator_logs_each_cycle(tmp_path: Path) -> None:
    conversation = make_conversation(id="conv-1", tool_ids={"search_web"})
    conversation.messages.append(Message.text_message(Role.USER, "find x", run_id="run-1"))
    store = InMemoryMessageStore([conversation])
    chat = FakeChatService(streams=[[tool_call_reply("search_web", '{"query": "x"}')], snapshots("x!")])
    orchestrator = GenerationOrchestrator(
        store,
        chat=chat,
        tools=search_dispatcher(),
        event_logger=ChatEventLogger(enabled=True, base_dir=tmp_path),
    )

    await orchestrator.session("conv-1").generate_stream()

    entries = _read_entries(next(tmp_path.glob("chat-*-run1.jsonl")))
    events = [entry["event"] for entry in entries]
    assert events == ["start", "request", "assistant", "tools", "request", "assistant", "completion"]
    assert entries[-1]["tool_rounds"] == 1
    assert entries[-1]["response_text"] == "x!"
