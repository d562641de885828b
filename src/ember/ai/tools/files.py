"""Local file search tool."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from ..orchestration.tools.types import ToolOutput, ToolSpec, Toolbox

FILE_KINDS = ("application", "document", "email", "pdf", "event", "contact", "image")


class FileIndex(Protocol):
    """Host file index (for example a desktop search service)."""

    async def query(self, query: str, kind: str | None = None) -> Sequence[str]:
        ...


SEARCH_FILES_SPEC = ToolSpec(
    tool=Toolbox.SEARCH_FILES,
    description="Searches the local filesystem for applications, files, emails, PDFs, events, contacts and images.",
    parameters={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "A search query"},
            "kind": {
                "type": "string",
                "description": "An optional filter to restrict what kind of files to return.",
                "enum": list(FILE_KINDS),
            },
        },
        "required": ["query"],
    },
)


class SearchFilesTool:
    spec = SEARCH_FILES_SPEC

    def __init__(self, index: FileIndex) -> None:
        self._index = index

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        query = str(arguments["query"])
        results = await self._index.query(query, arguments.get("kind"))
        return ToolOutput("\n".join(results), label=f"Searched files for '{query}'")


__all__ = ["FILE_KINDS", "FileIndex", "SEARCH_FILES_SPEC", "SearchFilesTool"]
