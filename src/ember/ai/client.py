"""Async AI client wrapper built around OpenAI-compatible endpoints."""

from __future__ import annotations

import asyncio
import base64
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Sequence, cast

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, RateLimitError
from openai.lib.streaming.chat import ChatCompletionStreamEvent
from openai.types.chat import ChatCompletionMessageParam, ChatCompletionToolChoiceOptionParam
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..chat.message_model import (
    AudioPart,
    FinishReason,
    ImagePart,
    Message,
    Role,
    TextPart,
    ToolCall,
    new_id,
)
from .ai_types import ToolChoice

LOGGER = logging.getLogger(__name__)

_TOOL_CHOICE_KEYWORDS = frozenset({"auto", "none", "required"})


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str
    api_key: str
    model: str
    image_model: str | None = None
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    temperature: float | None = None
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False


@dataclass(slots=True)
class AIStreamEvent:
    """Normalized representation of streaming deltas."""

    type: str
    content: str | None = None
    tool_name: str | None = None
    tool_index: int | None = None
    tool_arguments: str | None = None
    arguments_delta: str | None = None
    tool_call_id: str | None = None
    finish_reason: str | None = None


class AIClient:
    """Chat and image service backed by an OpenAI-compatible API, with retries."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)
        self._models_cache: List[str] | None = None
        self._models_lock = asyncio.Lock()

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        tool_choice: ToolChoice | None = None,
    ) -> Message:
        """Run a non-streaming completion and return the assistant message."""

        payload = self._build_chat_payload(
            model=model,
            messages=to_openai_messages(messages),
            tools=tools,
            tool_choice=normalize_tool_choice(tool_choice),
        )
        LOGGER.debug("Starting chat completion via %s with %s message(s)", payload["model"], len(payload["messages"]))
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        async for attempt in self._retrying():
            with attempt:
                response = await self._client.chat.completions.create(**payload)
        return _message_from_completion(response)

    async def complete_stream(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        tool_choice: ToolChoice | None = None,
    ) -> AsyncIterator[Message]:
        """Yield cumulative assistant snapshots while the completion streams."""

        message_id = new_id()
        deltas: list[str] = []
        final_text: str | None = None
        calls: dict[int, dict[str, str]] = {}
        finish_reason = FinishReason.NONE

        async for event in self.stream_chat(
            to_openai_messages(messages),
            model=model,
            tools=tools,
            tool_choice=normalize_tool_choice(tool_choice),
        ):
            if event.type == "content.delta" and event.content:
                deltas.append(event.content)
                yield _snapshot(message_id, "".join(deltas), calls, done=False)
            elif event.type == "content.done" and event.content:
                final_text = event.content
            elif event.type == "refusal.done":
                finish_reason = FinishReason.CONTENT_FILTER
                final_text = final_text or event.content
            elif event.type.startswith("tool_calls.function.arguments"):
                index = event.tool_index if event.tool_index is not None else len(calls)
                entry = calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
                if event.tool_name:
                    entry["name"] = event.tool_name
                if event.tool_call_id:
                    entry["id"] = event.tool_call_id
                if event.tool_arguments is not None:
                    entry["arguments"] = event.tool_arguments
            elif event.type == "chunk":
                if event.tool_index is not None and event.tool_call_id:
                    entry = calls.setdefault(event.tool_index, {"id": "", "name": "", "arguments": ""})
                    entry["id"] = event.tool_call_id
                if event.finish_reason:
                    finish_reason = FinishReason.parse(event.finish_reason)

        text = final_text if final_text is not None else "".join(deltas)
        if calls and finish_reason is FinishReason.NONE:
            finish_reason = FinishReason.TOOL_CALLS
        elif finish_reason is FinishReason.NONE:
            finish_reason = FinishReason.STOP
        yield _snapshot(message_id, text, calls, done=True, finish_reason=finish_reason)

    async def stream_chat(
        self,
        messages: Iterable[ChatCompletionMessageParam | Mapping[str, Any]],
        *,
        model: str | None = None,
        tools: Iterable[Mapping[str, Any]] | None = None,
        tool_choice: ChatCompletionToolChoiceOptionParam | None = None,
        max_tokens: int | None = None,
        metadata: Mapping[str, str] | None = None,
        **extra_params: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        """Stream chat completions for the provided provider-format messages."""

        payload = self._build_chat_payload(
            model=model,
            messages=[cast(ChatCompletionMessageParam, dict(message)) for message in messages],
            tools=tools,
            tool_choice=tool_choice,
            max_tokens=max_tokens,
            metadata=metadata,
            extra_params=extra_params,
        )
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s)",
            payload["model"],
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        # Only a stream that has produced nothing yet may be replayed.
        yielded = False
        async for attempt in self._retrying(lambda: not yielded):
            with attempt:
                async with self._client.chat.completions.stream(**payload) as stream:
                    async for event in stream:
                        for normalized in self._normalize_stream_event(event):
                            yielded = True
                            yield normalized
                break

    async def generate_images(self, model: str, prompt: str, *, count: int = 1) -> list[bytes]:
        """Generate ``count`` images and return their decoded bytes."""

        LOGGER.debug("Generating %s image(s) via %s", count, model)
        async for attempt in self._retrying():
            with attempt:
                response = await self._client.images.generate(
                    model=model,
                    prompt=prompt,
                    n=max(1, count),
                    response_format="b64_json",
                )
        images: list[bytes] = []
        for item in getattr(response, "data", None) or ():
            encoded = getattr(item, "b64_json", None)
            if encoded:
                images.append(base64.b64decode(encoded))
        return images

    async def list_models(self, *, force_refresh: bool = False) -> List[str]:
        """Return a list of supported model identifiers."""

        if self._models_cache is not None and not force_refresh:
            return list(self._models_cache)

        async with self._models_lock:
            if self._models_cache is not None and not force_refresh:
                return list(self._models_cache)

            response = await self._client.models.list()
            models = [item.id for item in response.data if getattr(item, "id", None)]
            self._models_cache = models
            return list(models)

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
        )

    def _retrying(self, replayable: Callable[[], bool] | None = None) -> AsyncRetrying:
        retry = retry_if_exception_type(
            (
                APIError,
                APIStatusError,
                APIConnectionError,
                RateLimitError,
                httpx.TimeoutException,
            )
        )
        if replayable is not None:
            retry = retry & retry_if_exception(lambda _: replayable())
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry,
        )

    def _build_chat_payload(
        self,
        *,
        model: str | None,
        messages: Sequence[ChatCompletionMessageParam],
        tools: Iterable[Mapping[str, Any]] | None,
        tool_choice: ChatCompletionToolChoiceOptionParam | None,
        max_tokens: int | None = None,
        metadata: Mapping[str, str] | None = None,
        extra_params: Mapping[str, Any] | None = None,
    ) -> Dict[str, Any]:
        if not messages:
            raise ValueError("At least one message is required to start a chat")
        payload: Dict[str, Any] = {
            "model": model or self._settings.model,
            "messages": list(messages),
        }

        merged_metadata = self._merge_metadata(metadata)
        if merged_metadata:
            payload["metadata"] = merged_metadata
        tool_list = list(tools or ())
        if tool_list:
            payload["tools"] = tool_list
            if tool_choice:
                payload["tool_choice"] = tool_choice
        if self._settings.temperature is not None:
            payload["temperature"] = self._settings.temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if extra_params:
            payload.update(extra_params)
        return payload

    def _merge_metadata(self, runtime_metadata: Mapping[str, str] | None) -> Dict[str, str] | None:
        combined: Dict[str, str] = {}
        if self._settings.metadata:
            combined.update(self._settings.metadata)
        if runtime_metadata:
            combined.update(runtime_metadata)
        return combined or None

    def _normalize_stream_event(self, event: ChatCompletionStreamEvent[Any]) -> list[AIStreamEvent]:
        event_type = getattr(event, "type", None)
        if event_type is None:
            return []

        if event_type == "chunk":
            return _normalize_chunk(event)
        if event_type == "content.delta":
            delta_text = getattr(event, "delta", None)
            if delta_text:
                return [AIStreamEvent(type=event_type, content=str(delta_text))]
            return []
        if event_type == "content.done":
            return [AIStreamEvent(type=event_type, content=getattr(event, "content", None))]
        if event_type == "refusal.delta":
            return [AIStreamEvent(type=event_type, content=getattr(event, "delta", None))]
        if event_type == "refusal.done":
            return [AIStreamEvent(type=event_type, content=getattr(event, "refusal", None))]
        if event_type in ("tool_calls.function.arguments.delta", "tool_calls.function.arguments.done"):
            return [
                AIStreamEvent(
                    type=event_type,
                    tool_name=getattr(event, "name", None),
                    tool_index=getattr(event, "index", None),
                    tool_arguments=getattr(event, "arguments", None),
                    arguments_delta=getattr(event, "arguments_delta", None),
                    tool_call_id=getattr(event, "id", None) or getattr(event, "tool_call_id", None),
                )
            ]
        return []

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def normalize_tool_choice(choice: ToolChoice | None) -> ChatCompletionToolChoiceOptionParam | None:
    """Translate a tool name into the provider's forced-function form."""

    if choice is None:
        return None
    if isinstance(choice, Mapping):
        return cast(ChatCompletionToolChoiceOptionParam, dict(choice))
    text = str(choice).strip()
    if not text:
        return None
    if text in _TOOL_CHOICE_KEYWORDS:
        return cast(ChatCompletionToolChoiceOptionParam, text)
    return cast(ChatCompletionToolChoiceOptionParam, {"type": "function", "function": {"name": text}})


def to_openai_messages(messages: Iterable[Message]) -> list[ChatCompletionMessageParam]:
    return [to_openai_message(message) for message in messages]


def to_openai_message(message: Message) -> ChatCompletionMessageParam:
    """Convert a timeline message into the chat completions wire shape."""

    payload: Dict[str, Any] = {"role": message.role.value}
    parts = message.contents or []
    if message.role is Role.USER and any(isinstance(part, ImagePart) for part in parts):
        payload["content"] = [_content_block(part) for part in parts if _content_block(part) is not None]
    else:
        payload["content"] = message.text
    if message.role is Role.ASSISTANT and message.tool_calls:
        payload["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments or "{}"},
            }
            for call in message.tool_calls
        ]
    if message.role is Role.TOOL and message.tool_response is not None:
        payload["tool_call_id"] = message.tool_response.tool_call_id
        payload["content"] = message.text or ""
    if payload["content"] is None and message.role is not Role.ASSISTANT:
        payload["content"] = ""
    return cast(ChatCompletionMessageParam, payload)


def _content_block(part: Any) -> Dict[str, Any] | None:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImagePart):
        if part.data:
            encoded = base64.b64encode(part.data).decode("ascii")
            return {"type": "image_url", "image_url": {"url": f"data:image/{part.format};base64,{encoded}"}}
        if part.url:
            return {"type": "image_url", "image_url": {"url": part.url}}
        return None
    if isinstance(part, AudioPart):
        return {"type": "text", "text": f"[audio: {part.url}]"}
    return None


def _normalize_chunk(event: Any) -> list[AIStreamEvent]:
    """One event per identified tool-call delta, then one for the finish reason."""

    chunk = getattr(event, "chunk", None)
    choices = getattr(chunk, "choices", None) or ()
    if not choices:
        return []
    choice = choices[0]
    delta = getattr(choice, "delta", None)
    events = [
        AIStreamEvent(type="chunk", tool_index=getattr(tool_delta, "index", None), tool_call_id=tool_delta.id)
        for tool_delta in getattr(delta, "tool_calls", None) or ()
        if getattr(tool_delta, "id", None)
    ]
    finish_reason = getattr(choice, "finish_reason", None)
    if finish_reason:
        events.append(AIStreamEvent(type="chunk", finish_reason=finish_reason))
    return events


def _snapshot(
    message_id: str,
    text: str,
    calls: Mapping[int, Mapping[str, str]],
    *,
    done: bool,
    finish_reason: FinishReason = FinishReason.NONE,
) -> Message:
    tool_calls = [
        ToolCall(
            id=entry.get("id") or f"{entry.get('name') or 'tool'}:{index}",
            name=entry.get("name", ""),
            arguments=entry.get("arguments") or "{}",
        )
        for index, entry in sorted(calls.items())
    ]
    return Message(
        id=message_id,
        role=Role.ASSISTANT,
        contents=[TextPart(text)] if text else None,
        tool_calls=tool_calls or None,
        done=done,
        finish_reason=finish_reason,
    )


def _message_from_completion(response: Any) -> Message:
    choices = getattr(response, "choices", None) or ()
    if not choices:
        raise ValueError("Completion response contained no choices")
    choice = choices[0]
    payload = getattr(choice, "message", None)
    text = getattr(payload, "content", None)
    tool_calls = [
        ToolCall(
            id=getattr(call, "id", None) or f"{call.function.name}:{index}",
            name=call.function.name,
            arguments=call.function.arguments or "{}",
        )
        for index, call in enumerate(getattr(payload, "tool_calls", None) or ())
    ]
    return Message(
        id=getattr(response, "id", None) or new_id(),
        role=Role.ASSISTANT,
        contents=[TextPart(text)] if text else None,
        tool_calls=tool_calls or None,
        done=True,
        finish_reason=FinishReason.parse(getattr(choice, "finish_reason", None)),
    )


__all__ = [
    "AIClient",
    "AIStreamEvent",
    "ClientSettings",
    "normalize_tool_choice",
    "to_openai_message",
    "to_openai_messages",
]
