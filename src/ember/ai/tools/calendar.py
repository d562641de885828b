"""Calendar search tool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Protocol, Sequence

from ..orchestration.tools.types import ToolOutput, ToolSpec, Toolbox

LOGGER = logging.getLogger(__name__)

NO_ACCESS_TEXT = (
    "You do not have calendar access. Tell the user to open Preferences and navigate to "
    "Permissions to enable calendar access."
)


@dataclass(slots=True, frozen=True)
class CalendarEvent:
    title: str
    start: datetime
    end: datetime


class CalendarSource(Protocol):
    async def events(self, start: datetime, end: datetime, query: str | None = None) -> Sequence[CalendarEvent]:
        ...


SEARCH_CALENDAR_SPEC = ToolSpec(
    tool=Toolbox.SEARCH_CALENDAR,
    description="Searches the user's calendar. You must always include a `start` and an `end` date.",
    parameters={
        "type": "object",
        "properties": {
            "start": {
                "type": "string",
                "description": "A start date and time. (Example: 2024-01-02T00:00)",
            },
            "end": {
                "type": "string",
                "description": "An end date and time. (Example: 2024-02-02T23:59)",
            },
            "query": {"type": "string", "description": "An optional search query"},
        },
        "required": ["start", "end"],
    },
)


class SearchCalendarTool:
    spec = SEARCH_CALENDAR_SPEC

    def __init__(self, source: CalendarSource) -> None:
        self._source = source

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        start = datetime.fromisoformat(str(arguments["start"]))
        end = datetime.fromisoformat(str(arguments["end"]))
        if end < start:
            raise ValueError("end must not be before start")
        try:
            events = list(await self._source.events(start, end, arguments.get("query")))
        except PermissionError:
            LOGGER.warning("Calendar access denied")
            return ToolOutput(NO_ACCESS_TEXT, label="Error accessing calendar")
        return ToolOutput(
            "\n".join(event.title for event in events),
            label=f"Found {len(events)} calendar items.",
        )


__all__ = ["CalendarEvent", "CalendarSource", "NO_ACCESS_TEXT", "SEARCH_CALENDAR_SPEC", "SearchCalendarTool"]
