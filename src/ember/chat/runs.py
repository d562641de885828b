"""Display grouping of a flat message timeline into runs.

A run is one user turn plus every intermediate tool call/result and the final
reply. Runs are derived on every read and never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from .message_model import Message, Role


@dataclass(slots=True, frozen=True)
class Run:
    id: str
    messages: tuple[Message, ...] = field(default_factory=tuple)
    started: datetime | None = None
    ended: datetime | None = None

    @property
    def steps(self) -> tuple[Message, ...]:
        """Every member except the last one."""

        return self.messages[:-1]

    @property
    def response(self) -> Message | None:
        """The final assistant reply, when the run ended with one."""

        if not self.messages:
            return None
        last = self.messages[-1]
        if last.role is not Role.ASSISTANT or last.tool_calls:
            return None
        return last

    @property
    def elapsed(self) -> timedelta | None:
        if self.started is None or self.ended is None:
            return None
        return self.ended - self.started

    @property
    def has_steps(self) -> bool:
        return len(self.messages) > 1


def aggregate_runs(messages: Iterable[Message]) -> list[Run]:
    """Cluster ``messages`` into ordered runs.

    Consecutive messages whose ``run_id`` equals the current run's id join it.
    Any other message starts a new run keyed by its ``run_id`` or, when that is
    empty, by its own id. Every message lands in exactly one run and order is
    preserved.
    """

    runs: list[Run] = []
    current_id: str | None = None
    members: list[Message] = []
    started: datetime | None = None
    ended: datetime | None = None

    for message in messages:
        if members and message.run_id and message.run_id == current_id:
            members.append(message)
            ended = message.modified
            continue
        if members:
            runs.append(_build_run(current_id, members, started, ended))
        current_id = message.run_id or message.id
        members = [message]
        started = message.created
        ended = message.modified

    if members:
        runs.append(_build_run(current_id, members, started, ended))
    return runs


def _build_run(
    run_id: str | None,
    members: Sequence[Message],
    started: datetime | None,
    ended: datetime | None,
) -> Run:
    return Run(id=run_id or members[0].id, messages=tuple(members), started=started, ended=ended)


__all__ = ["Run", "aggregate_runs"]
