"""Built-in tool handlers and the default toolbox."""

from __future__ import annotations

from typing import Any, Mapping

from ...core.errors import MissingServiceError
from ..ai_types import ChatService, ImageService
from ..orchestration.tools import DispatcherConfig, SimpleTool, ToolDispatcher, ToolRegistry, ToolSpec
from .calendar import SEARCH_CALENDAR_SPEC, CalendarEvent, CalendarSource, SearchCalendarTool
from .files import SEARCH_FILES_SPEC, FileIndex, SearchFilesTool
from .images import GENERATE_IMAGES_SPEC, GenerateImagesTool
from .memory import REMEMBER_SPEC, InMemoryMemoryStore, Memory, MemoryStore, RememberTool
from .web import (
    BROWSE_WEB_SPEC,
    SEARCH_WEB_SPEC,
    BrowseWebTool,
    HttpPageReader,
    ImageSearchResult,
    PageReader,
    WebSearchResult,
    WebSearchTool,
    WebSearcher,
)


def build_default_toolbox(
    *,
    searcher: WebSearcher | None = None,
    reader: PageReader | None = None,
    memory: MemoryStore | None = None,
    images: ImageService | None = None,
    image_model: str | None = None,
    calendar: CalendarSource | None = None,
    files: FileIndex | None = None,
    summarizer: ChatService | None = None,
    summary_model: str | None = None,
) -> ToolRegistry:
    """Register a handler for every Toolbox member and seal the registry.

    Tools whose collaborator is missing still get a handler; it reports the
    missing service back to the model as a failed tool call.
    """

    registry = ToolRegistry()
    registry.register(WebSearchTool(searcher) if searcher else _unavailable(SEARCH_WEB_SPEC, "web search"))
    registry.register(
        BrowseWebTool(reader, summarizer=summarizer, model=summary_model)
        if reader
        else _unavailable(BROWSE_WEB_SPEC, "web browse")
    )
    registry.register(RememberTool(memory) if memory is not None else _unavailable(REMEMBER_SPEC, "memory"))
    registry.register(
        GenerateImagesTool(images, image_model)
        if images is not None and image_model
        else _unavailable(GENERATE_IMAGES_SPEC, "image")
    )
    registry.register(SearchCalendarTool(calendar) if calendar else _unavailable(SEARCH_CALENDAR_SPEC, "calendar"))
    registry.register(SearchFilesTool(files) if files else _unavailable(SEARCH_FILES_SPEC, "file search"))
    return registry.seal()


def build_default_dispatcher(config: DispatcherConfig | None = None, **collaborators: Any) -> ToolDispatcher:
    return ToolDispatcher(build_default_toolbox(**collaborators), config)


def _unavailable(spec: ToolSpec, service: str) -> SimpleTool:
    def _handler(_: Mapping[str, Any]) -> str:
        raise MissingServiceError(service)

    return SimpleTool(spec=spec, handler=_handler)


__all__ = [
    "BrowseWebTool",
    "CalendarEvent",
    "CalendarSource",
    "FileIndex",
    "GenerateImagesTool",
    "HttpPageReader",
    "ImageSearchResult",
    "InMemoryMemoryStore",
    "Memory",
    "MemoryStore",
    "PageReader",
    "RememberTool",
    "SearchCalendarTool",
    "SearchFilesTool",
    "WebSearchResult",
    "WebSearchTool",
    "WebSearcher",
    "build_default_dispatcher",
    "build_default_toolbox",
]
