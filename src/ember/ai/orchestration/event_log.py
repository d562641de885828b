"""Debug event logging for generation cycles."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Mapping, Sequence

from ...utils import logging as logging_utils

LOGGER = logging.getLogger(__name__)


def _default_event_dir() -> Path:
    log_path = logging_utils.get_log_path()
    if log_path is not None:
        return log_path.parent / "events"
    return logging_utils.default_log_dir() / "events"


@dataclass(slots=True)
class NullChatEventLogRun:
    """No-op implementation used when event logging is disabled."""

    path: Path | None = None

    def __enter__(self) -> "NullChatEventLogRun":  # noqa: D401
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # noqa: D401
        return False

    def log_request(self, *_: Any, **__: Any) -> None:
        return

    def log_assistant_message(self, *_: Any, **__: Any) -> None:
        return

    def log_tool_batch(self, *_: Any, **__: Any) -> None:
        return

    def log_completion(self, *_: Any, **__: Any) -> None:
        return

    def log_failure(self, *_: Any, **__: Any) -> None:
        return


class ChatEventLogRun:
    """Context manager that writes structured JSONL entries for one cycle."""

    def __init__(self, path: Path, *, context: Mapping[str, Any]) -> None:
        self.path = path
        self._file = path.open("w", encoding="utf-8")
        self._finalized = False
        self._write_entry("start", context)

    def __enter__(self) -> "ChatEventLogRun":  # noqa: D401
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # noqa: D401
        if exc is not None and not self._finalized:
            self.log_failure(message=str(exc) or exc.__class__.__name__, error_type=exc.__class__.__name__)
        elif not self._finalized:
            self.log_failure(message="cycle ended without completion")
        return False

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def log_request(
        self,
        *,
        turn_index: int,
        model: str,
        message_count: int,
        tool_names: Sequence[str] = (),
        tool_choice: Any = None,
        streamed: bool = True,
    ) -> None:
        payload = {
            "turn_index": turn_index,
            "model": model,
            "message_count": message_count,
            "tools": list(tool_names),
            "tool_choice": tool_choice,
            "streamed": streamed,
        }
        self._write_entry("request", payload)

    def log_assistant_message(self, *, turn_index: int, message: Mapping[str, Any]) -> None:
        payload = {
            "turn_index": turn_index,
            "message": dict(message),
        }
        self._write_entry("assistant", payload)

    def log_tool_batch(self, *, turn_index: int, messages: Sequence[Mapping[str, Any]]) -> None:
        if not messages:
            return
        payload = {
            "turn_index": turn_index,
            "tool_messages": list(messages),
        }
        self._write_entry("tools", payload)

    def log_completion(self, *, response_text: str, tool_rounds: int) -> None:
        if self._finalized:
            return
        payload = {
            "response_text": response_text,
            "tool_rounds": tool_rounds,
            "status": "success",
        }
        self._write_entry("completion", payload)
        self._finalized = True
        self.close()

    def log_failure(self, *, message: str, error_type: str | None = None) -> None:
        if self._finalized:
            return
        payload: dict[str, Any] = {
            "status": "failure",
            "message": message,
        }
        if error_type:
            payload["error_type"] = error_type
        self._write_entry("failure", payload)
        self._finalized = True
        self.close()

    def _write_entry(self, event: str, payload: Mapping[str, Any] | None = None) -> None:
        entry: dict[str, Any] = {
            "event": event,
            "timestamp": time.time(),
        }
        if payload:
            for key, value in payload.items():
                entry[key] = self._safe_json(value)
        json.dump(entry, self._file, ensure_ascii=False)
        self._file.write("\n")
        self._file.flush()

    def _safe_json(self, value: Any, *, depth: int = 0) -> Any:
        if depth > 6:
            return repr(value)
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, Mapping):
            return {str(key): self._safe_json(val, depth=depth + 1) for key, val in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [self._safe_json(item, depth=depth + 1) for item in value]
        if isinstance(value, bytes):
            return f"<{len(value)} bytes>"
        return repr(value)


class ChatEventLogger:
    """Factory for per-cycle event logs when debug event logging is enabled."""

    def __init__(self, *, enabled: bool, base_dir: Path | str | None = None) -> None:
        self.enabled = bool(enabled)
        self._base_dir = Path(base_dir) if base_dir else _default_event_dir()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def start_run(
        self,
        *,
        run_id: str,
        conversation_id: str,
        model: str,
        kind: str = "generation",
        history: Sequence[Mapping[str, Any]] | None = None,
    ) -> ChatEventLogRun | NullChatEventLogRun:
        if not self.enabled:
            return NullChatEventLogRun()
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
            path = self._allocate_path(run_id)
            context = {
                "run_id": run_id,
                "conversation_id": conversation_id,
                "model": model,
                "kind": kind,
                "history": list(history or ()),
            }
            log_run = ChatEventLogRun(path, context=context)
            LOGGER.debug("Event log started: %s", path)
            return log_run
        except OSError:
            LOGGER.debug("Failed to start chat event log", exc_info=True)
            return NullChatEventLogRun()

    def _allocate_path(self, run_id: str) -> Path:
        timestamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
        safe_run_id = "".join(ch for ch in run_id if ch.isalnum())[:12] or "run"
        return self._base_dir / f"chat-{timestamp}-{safe_run_id}.jsonl"


__all__ = [
    "ChatEventLogger",
    "ChatEventLogRun",
    "NullChatEventLogRun",
]
