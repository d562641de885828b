"""Web search and web browsing tools."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping, Protocol, Sequence
from urllib.parse import urlparse

import httpx

from ...chat.message_model import Message, Role
from ..ai_types import ChatService
from ..orchestration.tools.types import ToolOutput, ToolSpec, Toolbox
from ..prompts import (
    IMAGE_SEARCH_RESULTS_INSTRUCTION,
    SUMMARIZE_PAGE_INSTRUCTION,
    WEB_SEARCH_RESULTS_INSTRUCTION,
    render_template,
)

LOGGER = logging.getLogger(__name__)

SEARCH_KINDS = ("web", "image")
_DEFAULT_BROWSE_INSTRUCTIONS = "Summarize the following webpage."
_MAX_PAGE_CHARS = 24_000


@dataclass(slots=True, frozen=True)
class WebSearchResult:
    url: str
    title: str | None = None
    description: str | None = None


@dataclass(slots=True, frozen=True)
class ImageSearchResult:
    url: str
    image_url: str
    title: str | None = None


class WebSearcher(Protocol):
    """Search engine scraper supplied by the host."""

    async def search(self, query: str) -> Sequence[WebSearchResult]:
        ...

    async def search_images(self, query: str) -> Sequence[ImageSearchResult]:
        ...


class PageReader(Protocol):
    """Fetches a URL and returns its readable content as markdown."""

    async def read(self, url: str) -> str:
        ...


class HttpPageReader:
    """:class:`PageReader` that downloads pages with ``httpx``.

    Turning HTML into markdown is left to ``extract``; by default the body is
    returned as-is.
    """

    USER_AGENT = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.3.1 Safari/605.1.15"
    )

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        extract: Callable[[str, str], str] | None = None,
        timeout: float = 20.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": self.USER_AGENT},
        )
        self._extract = extract

    async def read(self, url: str) -> str:
        response = await self._client.get(url)
        response.raise_for_status()
        text = response.text
        if self._extract is not None:
            return self._extract(str(response.url), text)
        return text

    async def aclose(self) -> None:
        await self._client.aclose()


SEARCH_WEB_SPEC = ToolSpec(
    tool=Toolbox.SEARCH_WEB,
    description="Search the web for website results or image results.",
    parameters={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "A web search query"},
            "kind": {
                "type": "string",
                "description": "A kind of search (e.g. web or image)",
                "enum": list(SEARCH_KINDS),
            },
        },
        "required": ["query"],
    },
)

BROWSE_WEB_SPEC = ToolSpec(
    tool=Toolbox.BROWSE_WEB,
    description="Browse a webpage URL using the given instructions.",
    parameters={
        "type": "object",
        "properties": {
            "instructions": {
                "type": "string",
                "description": "Instructions on what to extract from the webpage. Default to summarization.",
            },
            "title": {"type": "string", "description": "A webpage title"},
            "url": {"type": "string", "description": "A webpage URL"},
        },
        "required": ["url"],
    },
)


class WebSearchTool:
    """Runs a web or image search and hands the results back to the model."""

    spec = SEARCH_WEB_SPEC

    def __init__(self, searcher: WebSearcher, *, max_results: int = 10) -> None:
        self._searcher = searcher
        self._max_results = max(1, max_results)

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        query = str(arguments["query"]).strip()
        kind = arguments.get("kind") or "web"
        if kind == "image":
            images = list(await self._searcher.search_images(query))[: self._max_results]
            payload = {
                "kind": "image",
                "instructions": IMAGE_SEARCH_RESULTS_INSTRUCTION.format(count=len(images)),
                "results": [asdict(item) for item in images],
            }
            return ToolOutput(
                json.dumps(payload, ensure_ascii=False),
                label=f"Searched web images for '{query}'",
            )

        results = list(await self._searcher.search(query))[: self._max_results]
        LOGGER.debug("Web search for %r returned %s result(s)", query, len(results))
        rendered = "\n".join(_render_result(item) for item in results)
        content = render_template(WEB_SEARCH_RESULTS_INSTRUCTION, {"QUERY": query, "RESULTS": rendered})
        return ToolOutput(content, label=f"Searched web for '{query}'")


class BrowseWebTool:
    """Reads a webpage and, when a chat model is available, summarizes it."""

    spec = BROWSE_WEB_SPEC

    def __init__(
        self,
        reader: PageReader,
        *,
        summarizer: ChatService | None = None,
        model: str | None = None,
        max_chars: int = _MAX_PAGE_CHARS,
    ) -> None:
        self._reader = reader
        self._summarizer = summarizer
        self._model = model
        self._max_chars = max_chars

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        url = str(arguments["url"]).strip()
        title = str(arguments.get("title") or url)
        instructions = str(arguments.get("instructions") or _DEFAULT_BROWSE_INSTRUCTIONS)
        label = f"Read {urlparse(url).hostname or url}"
        try:
            page = (await self._reader.read(url))[: self._max_chars]
            summary = await self._summarize(page, instructions)
        except Exception as exc:
            LOGGER.warning("Browsing %s failed: %s", url, exc)
            return ToolOutput(f"<error>\n    {exc}\n</error>", label=label)

        content = (
            "<website>\n"
            f"    <title>{title}</title>\n"
            f"    <url>{url}</url>\n"
            f"    <summary>\n{summary or 'No Content'}\n    </summary>\n"
            "</website>"
        )
        return ToolOutput(content, label=label)

    async def _summarize(self, page: str, instructions: str) -> str:
        if self._summarizer is None or not self._model:
            return page
        prompt = render_template(SUMMARIZE_PAGE_INSTRUCTION, {"INSTRUCTIONS": instructions, "CONTENT": page})
        reply = await self._summarizer.complete(self._model, [Message.text_message(Role.USER, prompt)])
        return reply.text or ""


def _render_result(result: WebSearchResult) -> str:
    return (
        "<result>\n"
        f"    <title>{result.title or 'No title'}</title>\n"
        f"    <url>{result.url}</url>\n"
        f"    <description>{result.description or 'No description'}</description>\n"
        "</result>"
    )


__all__ = [
    "BROWSE_WEB_SPEC",
    "BrowseWebTool",
    "HttpPageReader",
    "ImageSearchResult",
    "PageReader",
    "SEARCH_WEB_SPEC",
    "WebSearchResult",
    "WebSearchTool",
    "WebSearcher",
]
