"""Tests for per-conversation cycle ownership."""

from __future__ import annotations

import asyncio

import pytest

from ember.ai.orchestration.cycles import CancellationToken, CycleRegistry
from ember.core.errors import ConversationBusyError, GenerationCancelled


def test_token_raises_once_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel()

    assert token.cancelled
    with pytest.raises(GenerationCancelled):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_claim_is_exclusive_per_conversation() -> None:
    registry = CycleRegistry()

    async with registry.claim("a", "generation") as cycle:
        assert registry.active("a") is cycle
        with pytest.raises(ConversationBusyError) as excinfo:
            registry.acquire("a", "suggestions")
        assert excinfo.value.active == "generation"
        other = registry.acquire("b", "generation")
        registry.release(other)

    assert "a" not in registry
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_cancel_flags_token_and_cancels_task() -> None:
    registry = CycleRegistry()
    started = asyncio.Event()

    async def _work() -> None:
        async with registry.claim("a", "generation"):
            started.set()
            await asyncio.sleep(10)

    task = asyncio.create_task(_work())
    await started.wait()
    cycle = registry.cancel("a")

    assert cycle is not None
    assert cycle.token.cancelled
    with pytest.raises(asyncio.CancelledError):
        await task
    assert registry.active("a") is None
    assert registry.cancel("a") is None


@pytest.mark.asyncio
async def test_cancel_from_own_task_only_sets_flag() -> None:
    registry = CycleRegistry()

    async with registry.claim("a", "generation") as cycle:
        registry.cancel("a")
        assert cycle.token.cancelled
        await asyncio.sleep(0)
