"""Tests for the built-in tool handlers and the default toolbox."""

from __future__ import annotations

import json
from datetime import datetime

import httpx
import pytest

from ember.ai.orchestration.tools import Toolbox
from ember.ai.tools import (
    BrowseWebTool,
    CalendarEvent,
    HttpPageReader,
    ImageSearchResult,
    InMemoryMemoryStore,
    RememberTool,
    SearchCalendarTool,
    SearchFilesTool,
    WebSearchResult,
    WebSearchTool,
    build_default_dispatcher,
    build_default_toolbox,
)
from ember.ai.tools.calendar import NO_ACCESS_TEXT
from ember.ai.tools.images import GenerateImagesTool

from helpers import FakeChatService, FakeImageService, text_reply


class _Searcher:
    async def search(self, query: str):
        return [
            WebSearchResult(url="https://a.example", title="A", description="first"),
            WebSearchResult(url="https://b.example"),
        ]

    async def search_images(self, query: str):
        return [ImageSearchResult(url="https://a.example/page", image_url="https://a.example/fox.png", title="Fox")]


class _Reader:
    def __init__(self, text: str = "# Page\nBody", error: Exception | None = None) -> None:
        self.text = text
        self.error = error

    async def read(self, url: str) -> str:
        if self.error is not None:
            raise self.error
        return self.text


class _Calendar:
    def __init__(self, denied: bool = False) -> None:
        self.denied = denied
        self.calls: list[tuple[datetime, datetime, str | None]] = []

    async def events(self, start: datetime, end: datetime, query: str | None = None):
        self.calls.append((start, end, query))
        if self.denied:
            raise PermissionError("denied")
        return [CalendarEvent(title="Dentist", start=start, end=end)]


class _Files:
    async def query(self, query: str, kind: str | None = None):
        return [f"/Users/me/{query}.pdf"]


@pytest.mark.asyncio
async def test_web_search_renders_results_with_label() -> None:
    output = await WebSearchTool(_Searcher()).execute({"query": "foxes"})

    assert output.label == "Searched web for 'foxes'"
    assert '"foxes"' in output.content
    assert "<url>https://a.example</url>" in output.content
    assert "<description>No description</description>" in output.content


@pytest.mark.asyncio
async def test_image_search_returns_json_payload() -> None:
    output = await WebSearchTool(_Searcher()).execute({"query": "foxes", "kind": "image"})

    payload = json.loads(output.content)
    assert output.label == "Searched web images for 'foxes'"
    assert payload["results"][0]["image_url"] == "https://a.example/fox.png"
    assert "1 images" in payload["instructions"]


@pytest.mark.asyncio
async def test_browse_web_summarizes_with_chat_model() -> None:
    chat = FakeChatService(replies=[text_reply("A short summary.")])
    tool = BrowseWebTool(_Reader(), summarizer=chat, model="m")

    output = await tool.execute({"url": "https://news.example/story", "title": "Story"})

    assert output.label == "Read news.example"
    assert "<summary>\nA short summary.\n    </summary>" in output.content
    assert "# Page" in (chat.calls[0]["messages"][0].text or "")


@pytest.mark.asyncio
async def test_browse_web_reports_fetch_errors_inline() -> None:
    tool = BrowseWebTool(_Reader(error=RuntimeError("404")))

    output = await tool.execute({"url": "https://news.example/missing"})

    assert output.content.startswith("<error>")
    assert "404" in output.content


@pytest.mark.asyncio
async def test_http_page_reader_uses_httpx() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=f"<html>{request.url.host}</html>")

    client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    reader = HttpPageReader(client=client, extract=lambda url, html: html.replace("<html>", "").replace("</html>", ""))

    try:
        assert await reader.read("https://docs.example/page") == "docs.example"
    finally:
        await reader.aclose()


@pytest.mark.asyncio
async def test_remember_saves_unique_items() -> None:
    store = InMemoryMemoryStore()
    tool = RememberTool(store)

    output = await tool.execute({"items": ["Likes tea", " ", "Likes tea", "Has a cat"]})

    assert output.content == "Saved memory"
    assert [memory.content for memory in store.items()] == ["Likes tea", "Has a cat"]


@pytest.mark.asyncio
async def test_generate_images_returns_parts_and_prompts() -> None:
    images = FakeImageService(images=[b"img"])
    output = await GenerateImagesTool(images, "image-model").execute({"prompts": ["a fox", "a hen"]})

    assert output.label == "Generating 2 images"
    parts = list(output.content)
    assert [getattr(part, "data", None) for part in parts[:2]] == [b"img", b"img"]
    assert parts[-1].text == "a fox\n\na hen"
    assert images.calls == [("image-model", "a fox", 1), ("image-model", "a hen", 1)]


@pytest.mark.asyncio
async def test_calendar_search_and_permission_denied() -> None:
    calendar = _Calendar()
    output = await SearchCalendarTool(calendar).execute({"start": "2024-01-02T00:00", "end": "2024-01-03T00:00"})

    assert output.content == "Dentist"
    assert output.label == "Found 1 calendar items."
    assert calendar.calls[0][0] == datetime(2024, 1, 2)

    denied = await SearchCalendarTool(_Calendar(denied=True)).execute(
        {"start": "2024-01-02T00:00", "end": "2024-01-03T00:00"}
    )
    assert denied.content == NO_ACCESS_TEXT


@pytest.mark.asyncio
async def test_calendar_rejects_reversed_range() -> None:
    with pytest.raises(ValueError):
        await SearchCalendarTool(_Calendar()).execute({"start": "2024-02-01T00:00", "end": "2024-01-01T00:00"})


@pytest.mark.asyncio
async def test_file_search_label() -> None:
    output = await SearchFilesTool(_Files()).execute({"query": "taxes", "kind": "pdf"})

    assert output.content == "/Users/me/taxes.pdf"
    assert output.label == "Searched files for 'taxes'"


def test_default_toolbox_covers_every_member() -> None:
    registry = build_default_toolbox()

    assert registry.sealed
    assert [registration.tool for registration in registry] == list(Toolbox)


@pytest.mark.asyncio
async def test_default_dispatcher_reports_missing_services() -> None:
    dispatcher = build_default_dispatcher(files=_Files())

    missing = await dispatcher.dispatch("call-1", "search_calendar", '{"start": "2024-01-01", "end": "2024-01-02"}')
    found = await dispatcher.dispatch("call-2", "search_files", '{"query": "taxes"}')

    assert missing[0].text == "Tool Failed: Missing 'calendar' service"
    assert found[0].text == "/Users/me/taxes.pdf"
