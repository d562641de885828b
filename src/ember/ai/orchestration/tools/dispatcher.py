"""Dispatches model tool calls to registered handlers.

Every outcome, including failures, is answered with role=tool messages so the
model always sees a coherent tool-result turn. Only cancellation escapes.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import jsonschema

from ....chat.message_model import Message
from .registry import ToolRegistry
from .types import ToolOutput, ToolResult

__all__ = [
    "DispatcherConfig",
    "ToolDispatcher",
    "UNKNOWN_TOOL_LABEL",
    "UNKNOWN_TOOL_TEXT",
    "unknown_tool_message",
    "failed_tool_message",
]

LOGGER = logging.getLogger(__name__)

UNKNOWN_TOOL_TEXT = "Unknown tool."
UNKNOWN_TOOL_LABEL = "Unknown tool"


# -----------------------------------------------------------------------------
# Dispatcher Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class DispatcherConfig:
    """Configuration for the tool dispatcher.

    Attributes:
        timeout: Per-call timeout in seconds; ``None`` or ``0`` disables it.
        log_arguments: Whether to log tool arguments (may contain sensitive data).
        validate_arguments: Validate decoded arguments against the tool schema.
    """

    timeout: float | None = 30.0
    log_arguments: bool = False
    validate_arguments: bool = True


# -----------------------------------------------------------------------------
# Result helpers
# -----------------------------------------------------------------------------


def unknown_tool_message(tool_call_id: str, name: str) -> Message:
    return Message.tool_result(
        tool_call_id,
        name or "unknown",
        UNKNOWN_TOOL_TEXT,
        label=UNKNOWN_TOOL_LABEL,
    )


def failed_tool_message(tool_call_id: str, name: str, reason: str) -> Message:
    return Message.tool_result(tool_call_id, name or "unknown", f"Tool Failed: {reason}")


def _to_messages(tool_call_id: str, name: str, result: ToolResult | None) -> list[Message]:
    if result is None:
        outputs: Sequence[ToolOutput] = [ToolOutput("")]
    elif isinstance(result, str):
        outputs = [ToolOutput(result)]
    elif isinstance(result, ToolOutput):
        outputs = [result]
    else:
        outputs = list(result)
    messages: list[Message] = []
    for output in outputs:
        message = Message.tool_result(tool_call_id, name, output.content, label=output.label)
        if output.attachments:
            message.attachments = list(output.attachments)
        messages.append(message)
    return messages or [Message.tool_result(tool_call_id, name, "")]


# -----------------------------------------------------------------------------
# Tool Dispatcher
# -----------------------------------------------------------------------------


class ToolDispatcher:
    """Executes tool calls against a sealed :class:`ToolRegistry`.

    Satisfies the ``ToolExecutor`` protocol consumed by the orchestrator.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        config: DispatcherConfig | None = None,
        *,
        require_complete: bool = True,
    ) -> None:
        if not registry.sealed:
            registry.seal(require_complete=require_complete)
        self._registry = registry
        self._config = config or DispatcherConfig()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def config(self) -> DispatcherConfig:
        return self._config

    def tool_definitions(self, tool_ids: Iterable[str]) -> list[dict[str, Any]]:
        """Provider-ready definitions for the enabled ``tool_ids``."""
        return [spec.to_openai_tool() for spec in self._registry.specs(tool_ids)]

    async def dispatch(self, tool_call_id: str, function_name: str, arguments: str) -> list[Message]:
        """Run one tool call and return the role=tool messages answering it."""
        registration = self._registry.get(function_name)
        if registration is None:
            LOGGER.warning("Model requested unknown tool %r (call_id=%s)", function_name, tool_call_id)
            return [unknown_tool_message(tool_call_id, function_name)]

        name = registration.spec.name
        try:
            decoded = self._decode_arguments(arguments)
            if self._config.validate_arguments and registration.spec.parameters:
                jsonschema.validate(decoded, dict(registration.spec.parameters))
        except json.JSONDecodeError as exc:
            LOGGER.warning("Tool %s received undecodable arguments: %s", name, exc)
            return [failed_tool_message(tool_call_id, name, f"Invalid arguments: {exc.msg}")]
        except ValueError as exc:
            LOGGER.warning("Tool %s received malformed arguments: %s", name, exc)
            return [failed_tool_message(tool_call_id, name, f"Invalid arguments: {exc}")]
        except jsonschema.ValidationError as exc:
            LOGGER.warning("Tool %s arguments failed validation: %s", name, exc.message)
            return [failed_tool_message(tool_call_id, name, f"Invalid arguments: {exc.message}")]

        if self._config.log_arguments:
            LOGGER.debug("Executing tool %s (call_id=%s) with arguments: %s", name, tool_call_id, decoded)
        else:
            LOGGER.debug("Executing tool %s (call_id=%s)", name, tool_call_id)

        timeout = self._config.timeout
        start_time = time.perf_counter()
        try:
            if timeout is not None and timeout > 0:
                result = await asyncio.wait_for(registration.implementation.execute(decoded), timeout=timeout)
            else:
                result = await registration.implementation.execute(decoded)
        except asyncio.TimeoutError:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning("Tool %s timed out after %.1fms (timeout=%.1fs)", name, duration_ms, timeout)
            return [failed_tool_message(tool_call_id, name, f"Timed out after {timeout:g}s")]
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning("Tool %s failed after %.1fms: %s", name, duration_ms, exc)
            return [failed_tool_message(tool_call_id, name, str(exc) or exc.__class__.__name__)]

        duration_ms = (time.perf_counter() - start_time) * 1000
        LOGGER.debug("Tool %s completed in %.1fms", name, duration_ms)
        return _to_messages(tool_call_id, name, result)

    @staticmethod
    def _decode_arguments(arguments: str | None) -> Mapping[str, Any]:
        text = (arguments or "").strip()
        if not text:
            return {}
        decoded = json.loads(text)
        if not isinstance(decoded, Mapping):
            raise ValueError("arguments must be a JSON object")
        return decoded
