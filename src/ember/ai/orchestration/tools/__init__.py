"""Tool system for the generation engine.

Example:
    from ember.ai.orchestration.tools import (
        ToolDispatcher,
        ToolRegistry,
        ToolSpec,
        Toolbox,
    )

    registry = ToolRegistry()
    registry.register_function(
        spec=ToolSpec(tool=Toolbox.REMEMBER, description="Remember facts"),
        handler=lambda args: "Saved memory",
    )

    dispatcher = ToolDispatcher(registry, require_complete=False)
    messages = await dispatcher.dispatch("call-1", "remember", '{"items": ["likes tea"]}')
"""

from .types import (
    Tool,
    ToolSpec,
    ToolOutput,
    ToolResult,
    ToolHandler,
    AsyncToolHandler,
    SimpleTool,
    Toolbox,
)

from .registry import (
    ToolRegistry,
    ToolRegistration,
    DuplicateToolError,
    IncompleteToolboxError,
)

from .dispatcher import (
    DispatcherConfig,
    ToolDispatcher,
    UNKNOWN_TOOL_LABEL,
    UNKNOWN_TOOL_TEXT,
    failed_tool_message,
    unknown_tool_message,
)

__all__ = [
    # types.py
    "Tool",
    "ToolSpec",
    "ToolOutput",
    "ToolResult",
    "ToolHandler",
    "AsyncToolHandler",
    "SimpleTool",
    "Toolbox",
    # registry.py
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "IncompleteToolboxError",
    # dispatcher.py
    "DispatcherConfig",
    "ToolDispatcher",
    "UNKNOWN_TOOL_LABEL",
    "UNKNOWN_TOOL_TEXT",
    "failed_tool_message",
    "unknown_tool_message",
]
