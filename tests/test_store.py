"""Tests for the in-memory conversation store."""

from __future__ import annotations

import pytest

from ember.chat.message_model import GenerationState, Message, Role
from ember.chat.store import InMemoryMessageStore, MessageStore
from ember.core.errors import MissingConversationError

from helpers import make_conversation


def test_store_satisfies_protocol(store: InMemoryMessageStore) -> None:
    assert isinstance(store, MessageStore)


def test_get_returns_independent_copies(store: InMemoryMessageStore) -> None:
    first = store.get("conv-1")
    assert first is not None
    first.messages.clear()
    first.title = "changed"

    second = store.get("conv-1")
    assert second is not None
    assert len(second.messages) == 1
    assert second.title is None


def test_get_missing_returns_none(store: InMemoryMessageStore) -> None:
    assert store.get("nope") is None


@pytest.mark.asyncio
async def test_upsert_message_replaces_in_place(store: InMemoryMessageStore) -> None:
    await store.upsert_message(Message.text_message(Role.ASSISTANT, "He", id="m1", done=False), "conv-1")
    await store.upsert_message(Message.text_message(Role.USER, "later", id="u2"), "conv-1")
    await store.upsert_message(Message.text_message(Role.ASSISTANT, "Hello!", id="m1"), "conv-1")

    conversation = store.get("conv-1")
    assert conversation is not None
    assert [message.id for message in conversation.messages] == ["u1", "m1", "u2"]
    assert conversation.message("m1").text == "Hello!"


@pytest.mark.asyncio
async def test_upsert_message_requires_conversation(store: InMemoryMessageStore) -> None:
    with pytest.raises(MissingConversationError):
        await store.upsert_message(Message.text_message(Role.USER, "x"), "missing")


@pytest.mark.asyncio
async def test_update_sets_fields_and_rejects_unknown(store: InMemoryMessageStore) -> None:
    updated = await store.update("conv-1", state=GenerationState.PROCESSING, suggestions=["a"])

    assert updated.state is GenerationState.PROCESSING
    assert updated.suggestions == ["a"]
    with pytest.raises(TypeError):
        await store.update("conv-1", messages=[])


@pytest.mark.asyncio
async def test_upsert_keeps_created_and_delete() -> None:
    store = InMemoryMessageStore()
    conversation = make_conversation(id="c")
    stored = await store.upsert(conversation)
    again = await store.upsert(make_conversation(id="c", title="Renamed"))

    assert again.created == stored.created
    assert again.title == "Renamed"
    assert "c" in store
    assert await store.delete("c") is True
    assert await store.delete("c") is False
    assert len(store) == 0


@pytest.mark.asyncio
async def test_list_conversations_most_recent_first() -> None:
    store = InMemoryMessageStore()
    await store.upsert(make_conversation(id="old"))
    await store.upsert(make_conversation(id="new"))
    await store.update("old", title="touched")

    assert [item.id for item in store.list_conversations()] == ["old", "new"]
