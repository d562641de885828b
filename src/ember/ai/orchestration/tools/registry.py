"""Closed registry mapping every Toolbox member to its handler."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

from .types import AsyncToolHandler, SimpleTool, Tool, ToolHandler, ToolSpec, Toolbox

__all__ = [
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "IncompleteToolboxError",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class DuplicateToolError(Exception):
    """Raised when a Toolbox member is registered twice."""

    def __init__(self, tool: Toolbox) -> None:
        self.tool = tool
        super().__init__(f"Tool '{tool.value}' is already registered")


class IncompleteToolboxError(Exception):
    """Raised when the registry is sealed with Toolbox members left unhandled."""

    def __init__(self, missing: Iterable[Toolbox]) -> None:
        self.missing = tuple(missing)
        names = ", ".join(item.value for item in self.missing)
        super().__init__(f"No handler registered for: {names}")


# -----------------------------------------------------------------------------
# Tool Registration
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolRegistration:
    """Record of a registered tool."""

    tool: Toolbox
    implementation: Tool
    spec: ToolSpec
    metadata: dict[str, Any] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry keyed by :class:`Toolbox`.

    Example:
        registry = ToolRegistry()
        registry.register_function(
            ToolSpec(tool=Toolbox.REMEMBER, description="Remember facts"),
            lambda args: "Saved memory",
        )
        registry.seal(require_complete=False)
    """

    def __init__(self) -> None:
        self._tools: dict[Toolbox, ToolRegistration] = {}
        self._sealed = False

    def register(
        self,
        implementation: Tool,
        *,
        allow_override: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolRegistration:
        """Register a tool implementation under its spec's Toolbox member.

        Raises:
            DuplicateToolError: If the member is already registered and
                ``allow_override`` is False.
            RuntimeError: If the registry has been sealed.
        """
        if self._sealed:
            raise RuntimeError("Tool registry is sealed")
        spec = implementation.spec
        tool = Toolbox(spec.tool)
        if tool in self._tools and not allow_override:
            raise DuplicateToolError(tool)

        registration = ToolRegistration(
            tool=tool,
            implementation=implementation,
            spec=spec,
            metadata=dict(metadata) if metadata else {},
        )
        self._tools[tool] = registration
        LOGGER.debug("Registered tool: %s", tool.value)
        return registration

    def register_function(
        self,
        spec: ToolSpec,
        handler: ToolHandler | AsyncToolHandler,
        *,
        allow_override: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolRegistration:
        """Register a sync or async function as the handler for ``spec.tool``."""
        return self.register(
            SimpleTool(spec=spec, handler=handler),
            allow_override=allow_override,
            metadata=metadata,
        )

    def seal(self, *, require_complete: bool = True) -> "ToolRegistry":
        """Freeze the registry; by default every Toolbox member must be handled."""
        if require_complete:
            missing = [tool for tool in Toolbox if tool not in self._tools]
            if missing:
                raise IncompleteToolboxError(missing)
        self._sealed = True
        return self

    @property
    def sealed(self) -> bool:
        return self._sealed

    def get(self, name: str | Toolbox | None) -> ToolRegistration | None:
        """Look up a registration by Toolbox member or function name."""
        tool = name if isinstance(name, Toolbox) else Toolbox.parse(name)
        if tool is None:
            return None
        return self._tools.get(tool)

    def specs(self, tool_ids: Iterable[str] | None = None) -> list[ToolSpec]:
        """Specs in Toolbox order, limited to ``tool_ids`` when given."""
        if tool_ids is None:
            wanted = set(self._tools)
        else:
            wanted = {tool for tool in (Toolbox.parse(item) for item in tool_ids) if tool is not None}
        return [self._tools[tool].spec for tool in Toolbox if tool in wanted and tool in self._tools]

    def names(self) -> list[str]:
        return [tool.value for tool in Toolbox if tool in self._tools]

    def __contains__(self, name: object) -> bool:
        if isinstance(name, (str, Toolbox)):
            return self.get(name) is not None
        return False

    def __iter__(self) -> Iterator[ToolRegistration]:
        return (self._tools[tool] for tool in Toolbox if tool in self._tools)

    def __len__(self) -> int:
        return len(self._tools)
