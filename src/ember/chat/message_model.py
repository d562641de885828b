"""Conversation and message data models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, Sequence, Union


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class MessageKind(str, Enum):
    """How a message participates in the timeline.

    ``instruction`` messages seed the prompt, ``error`` and ``local`` messages
    are shown to the user but never sent to a model.
    """

    NORMAL = "normal"
    INSTRUCTION = "instruction"
    ERROR = "error"
    LOCAL = "local"


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    CANCELLED = "cancelled"
    NONE = "none"

    @classmethod
    def parse(cls, value: Any) -> "FinishReason":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        aliases = {"toolcalls": cls.TOOL_CALLS, "function_call": cls.TOOL_CALLS, "contentfilter": cls.CONTENT_FILTER}
        if text in aliases:
            return aliases[text]
        try:
            return cls(text)
        except ValueError:
            return cls.NONE


class GenerationState(str, Enum):
    """Progress indicator for a conversation; exactly one per conversation."""

    IDLE = "idle"
    PROCESSING = "processing"
    STREAMING = "streaming"
    SUGGESTING = "suggesting"


@dataclass(slots=True, frozen=True)
class TextPart:
    text: str
    type: ClassVar[str] = "text"


@dataclass(slots=True, frozen=True)
class ImagePart:
    """Inline image bytes or a reference to a stored image."""

    data: bytes | None = None
    format: str = "jpeg"
    url: str | None = None
    detail: str | None = None
    type: ClassVar[str] = "image"


@dataclass(slots=True, frozen=True)
class AudioPart:
    url: str
    format: str = "mp3"
    type: ClassVar[str] = "audio"


ContentPart = Union[TextPart, ImagePart, AudioPart]


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: str = "{}"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass(slots=True, frozen=True)
class ToolResponse:
    """Links a tool-role message back to the call it answers."""

    tool_call_id: str
    name: str


@dataclass(slots=True, frozen=True)
class Attachment:
    """Typed reference to an asset produced while answering (image, file, ...)."""

    kind: str
    url: str
    label: str | None = None


@dataclass(slots=True)
class Message:
    """One entry of a conversation timeline.

    Content is an ordered list of typed parts. Assistant messages that only
    request tools may carry no content at all. Tool messages must always say
    which call and which tool they answer.
    """

    role: Role
    contents: list[ContentPart] | None = None
    id: str = field(default_factory=new_id)
    kind: MessageKind = MessageKind.NORMAL
    tool_calls: list[ToolCall] | None = None
    tool_response: ToolResponse | None = None
    attachments: list[Attachment] = field(default_factory=list)
    run_id: str | None = None
    done: bool = True
    finish_reason: FinishReason = FinishReason.NONE
    metadata: Dict[str, Any] = field(default_factory=dict)
    created: datetime = field(default_factory=_utcnow)
    modified: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        self.role = Role(self.role)
        self.kind = MessageKind(self.kind)
        self.finish_reason = FinishReason.parse(self.finish_reason)
        if self.role is Role.TOOL:
            if self.tool_response is None or not self.tool_response.name:
                raise ValueError("Tool messages require a tool call response with a tool name")

    @classmethod
    def text_message(cls, role: Role | str, text: str, **kwargs: Any) -> "Message":
        return cls(role=Role(role), contents=[TextPart(text)], **kwargs)

    @classmethod
    def tool_result(
        cls,
        tool_call_id: str,
        name: str,
        content: str | Sequence[ContentPart],
        *,
        label: str | None = None,
        **kwargs: Any,
    ) -> "Message":
        """Build a role=tool message answering ``tool_call_id``."""

        parts: list[ContentPart] = [TextPart(content)] if isinstance(content, str) else list(content)
        metadata = dict(kwargs.pop("metadata", None) or {})
        if label:
            metadata["label"] = label
        return cls(
            role=Role.TOOL,
            contents=parts,
            tool_response=ToolResponse(tool_call_id=tool_call_id, name=name),
            metadata=metadata,
            **kwargs,
        )

    @property
    def text(self) -> str | None:
        """Concatenated text parts, or ``None`` when the message has no text."""

        if not self.contents:
            return None
        chunks = [part.text for part in self.contents if isinstance(part, TextPart)]
        if not chunks:
            return None
        return "\n".join(chunks)

    @property
    def images(self) -> list[ImagePart]:
        return [part for part in self.contents or () if isinstance(part, ImagePart)]

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @property
    def is_empty(self) -> bool:
        return not self.contents and not self.tool_calls

    @property
    def tool_name(self) -> str | None:
        return self.tool_response.name if self.tool_response else None

    def apply(self, delta: "Message") -> "Message":
        """Return this message updated with a newer partial snapshot.

        Identity, role, run and creation time are kept; everything the stream
        can change is taken from ``delta``.
        """

        return replace(
            self,
            contents=list(delta.contents) if delta.contents is not None else self.contents,
            tool_calls=list(delta.tool_calls) if delta.tool_calls is not None else self.tool_calls,
            attachments=list(delta.attachments) or self.attachments,
            done=delta.done,
            finish_reason=delta.finish_reason,
            metadata={**self.metadata, **delta.metadata},
            modified=_utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for logs and debugging."""

        return {
            "id": self.id,
            "role": self.role.value,
            "kind": self.kind.value,
            "content": _serialize_parts(self.contents),
            "tool_calls": [call.to_dict() for call in self.tool_calls] if self.tool_calls else None,
            "tool_call_id": self.tool_response.tool_call_id if self.tool_response else None,
            "name": self.tool_name,
            "run_id": self.run_id,
            "done": self.done,
            "finish_reason": self.finish_reason.value,
            "metadata": dict(self.metadata),
            "created": self.created.isoformat(),
            "modified": self.modified.isoformat(),
        }


def _serialize_parts(parts: Iterable[ContentPart] | None) -> list[Dict[str, Any]] | None:
    if parts is None:
        return None
    payload: list[Dict[str, Any]] = []
    for part in parts:
        if isinstance(part, TextPart):
            payload.append({"type": part.type, "text": part.text})
        elif isinstance(part, ImagePart):
            payload.append(
                {
                    "type": part.type,
                    "format": part.format,
                    "url": part.url,
                    "bytes": len(part.data) if part.data else 0,
                }
            )
        else:
            payload.append({"type": part.type, "url": part.url, "format": part.format})
    return payload


@dataclass(slots=True)
class Conversation:
    """A conversation owned by the store.

    ``suggestions`` is ``None`` when no suggestions are set, which is distinct
    from an empty list returned by the model.
    """

    id: str = field(default_factory=new_id)
    title: str | None = None
    subtitle: str | None = None
    instructions: str = ""
    tool_ids: set[str] = field(default_factory=set)
    suggestions: list[str] | None = None
    state: GenerationState = GenerationState.IDLE
    model_id: str | None = None
    error: str | None = None
    messages: list[Message] = field(default_factory=list)
    created: datetime = field(default_factory=_utcnow)
    modified: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        self.state = GenerationState(self.state)
        self.tool_ids = set(self.tool_ids)

    def message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None


__all__ = [
    "Attachment",
    "AudioPart",
    "ContentPart",
    "Conversation",
    "FinishReason",
    "GenerationState",
    "ImagePart",
    "Message",
    "MessageKind",
    "Role",
    "TextPart",
    "ToolCall",
    "ToolResponse",
    "new_id",
]
