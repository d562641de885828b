"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from ember.chat.message_model import Message, Role
from ember.chat.store import InMemoryMessageStore

from helpers import make_conversation


@pytest.fixture
def conversation():
    conversation = make_conversation(id="conv-1")
    conversation.messages.append(Message.text_message(Role.USER, "hi", id="u1", run_id="run-1"))
    return conversation


@pytest.fixture
def store(conversation) -> InMemoryMessageStore:
    return InMemoryMessageStore([conversation])
