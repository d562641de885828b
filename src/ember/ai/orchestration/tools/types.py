"""Tool system types for the generation engine.

Tools form a closed set: every tool the engine can dispatch is a member of
:class:`Toolbox`, and the registry refuses anything else. Handlers receive
decoded, schema-validated arguments and return :class:`ToolOutput` values that
the dispatcher turns into role=tool messages.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence, Union, runtime_checkable

from ....chat.message_model import Attachment, ContentPart

__all__ = [
    "Toolbox",
    "ToolSpec",
    "ToolOutput",
    "ToolResult",
    "ToolHandler",
    "AsyncToolHandler",
    "Tool",
    "SimpleTool",
]


# -----------------------------------------------------------------------------
# Toolbox
# -----------------------------------------------------------------------------


class Toolbox(str, Enum):
    """Every tool the engine knows how to dispatch."""

    SEARCH_WEB = "search_web"
    BROWSE_WEB = "browse_web"
    REMEMBER = "remember"
    GENERATE_IMAGES = "generate_images"
    SEARCH_CALENDAR = "search_calendar"
    SEARCH_FILES = "search_files"

    @classmethod
    def parse(cls, name: str | None) -> "Toolbox | None":
        """Resolve a function name, including names models were prompted with before."""

        if not name:
            return None
        text = name.strip()
        try:
            return cls(text)
        except ValueError:
            return _LEGACY_NAMES.get(text)


_LEGACY_NAMES: dict[str, Toolbox] = {
    "web_search": Toolbox.SEARCH_WEB,
    "web_browse": Toolbox.BROWSE_WEB,
    "generate_web_browse": Toolbox.BROWSE_WEB,
    "image_generator": Toolbox.GENERATE_IMAGES,
    "calendar_search": Toolbox.SEARCH_CALENDAR,
    "file_search": Toolbox.SEARCH_FILES,
    "generate_memory": Toolbox.REMEMBER,
}


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        tool: Toolbox member the spec describes.
        description: Text shown to the model.
        parameters: JSON Schema for the tool's arguments.
    """

    tool: Toolbox
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.tool.value

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters) if self.parameters else {
                    "type": "object",
                    "properties": {},
                },
            },
        }


# -----------------------------------------------------------------------------
# Tool Results
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolOutput:
    """Content for one role=tool message.

    ``label`` is a short human-readable summary such as "Searched web for 'x'".
    """

    content: str | Sequence[ContentPart]
    label: str | None = None
    attachments: Sequence[Attachment] = ()


ToolResult = Union[str, ToolOutput, Sequence[ToolOutput]]


# -----------------------------------------------------------------------------
# Tool Handler Types
# -----------------------------------------------------------------------------

# Synchronous tool handler
ToolHandler = Callable[[Mapping[str, Any]], ToolResult]

# Asynchronous tool handler
AsyncToolHandler = Callable[[Mapping[str, Any]], Awaitable[ToolResult]]


# -----------------------------------------------------------------------------
# Tool Protocol
# -----------------------------------------------------------------------------


@runtime_checkable
class Tool(Protocol):
    """Protocol for tool implementations."""

    @property
    def spec(self) -> ToolSpec:
        ...

    async def execute(self, arguments: Mapping[str, Any]) -> ToolResult:
        """Run the tool; exceptions are reported back to the model by the dispatcher."""
        ...


# -----------------------------------------------------------------------------
# Simple Tool Implementation
# -----------------------------------------------------------------------------


@dataclass
class SimpleTool:
    """Tool wrapping a plain callable.

    Example:
        tool = SimpleTool(
            spec=ToolSpec(tool=Toolbox.REMEMBER, description="Remember facts"),
            handler=lambda args: ToolOutput("Saved memory"),
        )
    """

    spec: ToolSpec
    handler: ToolHandler | AsyncToolHandler

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, arguments: Mapping[str, Any]) -> ToolResult:
        result = self.handler(arguments)
        if inspect.isawaitable(result):
            return await result
        return result
