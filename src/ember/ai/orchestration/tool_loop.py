"""Tool-call resolution loop shared by the streamed and whole-message paths."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

from ...chat.message_model import Message
from ...core.errors import ToolLoopExceededError
from ..ai_types import ToolChoice, ToolExecutor
from .cycles import CancellationToken
from .event_log import ChatEventLogRun, NullChatEventLogRun
from .tools.dispatcher import unknown_tool_message

LOGGER = logging.getLogger(__name__)

RequestFn = Callable[[ToolChoice | None, int], Awaitable[Message]]
"""Issue one completion request: ``(tool_choice, round_index) -> assistant message``."""

PersistFn = Callable[[Message], Awaitable[Any]]


@dataclass(slots=True, frozen=True)
class LoopOutcome:
    """Final reply of a cycle and the number of tool rounds it took."""

    message: Message
    rounds: int


class ToolCallLoop:
    """Alternates completion requests and tool dispatch rounds.

    Only the first request of a cycle may carry a forced tool choice. Tool
    calls inside one round run sequentially, in the order the model listed
    them, and their results are persisted in the order they return.
    """

    def __init__(self, executor: ToolExecutor | None, *, max_rounds: int = 5) -> None:
        self._executor = executor
        self._max_rounds = max(1, int(max_rounds))

    @property
    def max_rounds(self) -> int:
        return self._max_rounds

    async def run(
        self,
        request: RequestFn,
        persist: PersistFn,
        *,
        run_id: str,
        tool_choice: ToolChoice | None = None,
        token: CancellationToken | None = None,
        log_run: ChatEventLogRun | NullChatEventLogRun | None = None,
    ) -> LoopOutcome:
        """Drive requests until a reply without tool calls arrives.

        Raises:
            ToolLoopExceededError: The model still asked for tools after
                ``max_rounds`` dispatch rounds.
        """

        choice = tool_choice
        rounds = 0
        while True:
            message = await request(choice, rounds)
            choice = None
            if log_run is not None:
                log_run.log_assistant_message(turn_index=rounds, message=message.to_dict())
            if not message.tool_calls:
                return LoopOutcome(message=message, rounds=rounds)
            if rounds >= self._max_rounds:
                LOGGER.warning("Tool loop exceeded %s round(s); stopping", self._max_rounds)
                raise ToolLoopExceededError(rounds)
            rounds += 1
            results = await self.dispatch_round(message, persist, run_id=run_id, token=token)
            if log_run is not None:
                log_run.log_tool_batch(turn_index=rounds, messages=[item.to_dict() for item in results])

    async def dispatch_round(
        self,
        message: Message,
        persist: PersistFn,
        *,
        run_id: str | None = None,
        token: CancellationToken | None = None,
    ) -> list[Message]:
        """Dispatch every tool call on ``message`` and persist the answers."""

        results: list[Message] = []
        for call in message.tool_calls or ():
            if token is not None:
                token.raise_if_cancelled()
            if self._executor is None:
                LOGGER.warning("No tool executor configured; answering %s as unknown", call.name)
                answers = [unknown_tool_message(call.id, call.name)]
            else:
                answers = await self._executor.dispatch(call.id, call.name, call.arguments)
            for answer in answers:
                stored = replace(answer, run_id=run_id or answer.run_id)
                await persist(stored)
                results.append(stored)
        return results


__all__ = ["LoopOutcome", "PersistFn", "RequestFn", "ToolCallLoop"]
