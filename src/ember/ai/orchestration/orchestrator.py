"""Generation orchestrator driving model cycles for stored conversations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, Sequence

from ...chat.message_model import (
    Conversation,
    FinishReason,
    GenerationState,
    ImagePart,
    Message,
    Role,
    TextPart,
    new_id,
)
from ...chat.runs import Run, aggregate_runs
from ...chat.store import MessageStore
from ...core.errors import (
    DecodeError,
    GenerationCancelled,
    GenerationError,
    MissingConversationError,
    MissingModelError,
    MissingServiceError,
    ToolLoopExceededError,
)
from ..ai_types import ChatService, ImageService, ToolChoice, ToolExecutor
from ..prompts import IMAGE_RESPONSE_TEXT, default_context, render_template
from .cycles import CancellationToken, Cycle, CycleRegistry
from .event_log import ChatEventLogger, ChatEventLogRun, NullChatEventLogRun
from .message_builder import build_history
from .state import GenerationStateMachine
from .suggestions import SuggestionGenerator
from .titles import TitleGenerator
from .tool_loop import ToolCallLoop

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class OrchestratorConfig:
    """Static knobs for the orchestrator.

    Attributes:
        model: Default chat model used when a conversation names none.
        image_model: Model used by :meth:`ConversationSession.generate_image`.
        max_tool_rounds: Tool dispatch rounds allowed per cycle before the
            cycle fails with :class:`ToolLoopExceededError`.
        suggestions_enabled: Run suggestion generation after :meth:`ConversationSession.send`.
        titles_enabled: Run title generation after :meth:`ConversationSession.send`.
        max_suggestions: Upper bound on stored suggestions.
        image_count: Images requested per explicit image generation.
    """

    model: str | None = None
    image_model: str | None = None
    max_tool_rounds: int = 5
    suggestions_enabled: bool = True
    titles_enabled: bool = True
    max_suggestions: int = 3
    image_count: int = 1

    def __post_init__(self) -> None:
        if self.max_tool_rounds < 1:
            raise ValueError("max_tool_rounds must be at least 1")
        if self.max_suggestions < 1:
            raise ValueError("max_suggestions must be at least 1")


class GenerationOrchestrator:
    """Owns the collaborators shared by every conversation session.

    The orchestrator keeps no conversation data itself; it reads from and
    writes to the store on every step.
    """

    def __init__(
        self,
        store: MessageStore,
        *,
        chat: ChatService | None = None,
        tools: ToolExecutor | None = None,
        images: ImageService | None = None,
        config: OrchestratorConfig | None = None,
        event_logger: ChatEventLogger | None = None,
    ) -> None:
        self.store = store
        self.chat = chat
        self.tools = tools
        self.images = images
        self.config = config or OrchestratorConfig()
        self.event_logger = event_logger or ChatEventLogger(enabled=False)
        self.state = GenerationStateMachine(store, default_model=self.config.model)
        self.cycles = CycleRegistry()
        self.tool_loop = ToolCallLoop(tools, max_rounds=self.config.max_tool_rounds)

    def session(self, conversation_id: str) -> "ConversationSession":
        return ConversationSession(self, conversation_id)

    async def cancel(self, conversation_id: str) -> bool:
        """Cancel the in-flight cycle for ``conversation_id`` and force it idle.

        Returns ``True`` when a cycle was running.
        """

        cycle = self.cycles.cancel(conversation_id)
        task = cycle.task if cycle is not None else None
        if task is not None and task is not asyncio.current_task() and not task.done():
            await asyncio.wait({task})
        await self.state.reset(conversation_id)
        return cycle is not None

    def runs(self, conversation_id: str) -> list[Run]:
        return aggregate_runs(self.state.require_conversation(conversation_id).messages)

    def require_chat(self) -> ChatService:
        if self.chat is None:
            raise MissingServiceError("chat")
        return self.chat


class ConversationSession:
    """Chainable handle for one conversation.

    Every operation validates the conversation first and returns the session,
    so calls can be chained::

        await (await session.append(message)).generate_stream()
    """

    def __init__(self, orchestrator: GenerationOrchestrator, conversation_id: str) -> None:
        self._orchestrator = orchestrator
        self.conversation_id = conversation_id
        self.last_error: BaseException | None = None
        self.cancelled = False

    @property
    def conversation(self) -> Conversation:
        """Fresh copy of the stored conversation."""

        return self._orchestrator.state.require_conversation(self.conversation_id)

    def runs(self) -> list[Run]:
        return self._orchestrator.runs(self.conversation_id)

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    async def append(self, message: Message) -> "ConversationSession":
        """Persist ``message``; never creates the conversation implicitly."""

        store = self._orchestrator.store
        if store.get(self.conversation_id) is None:
            raise MissingConversationError(self.conversation_id)
        await store.upsert_message(message, self.conversation_id)
        return self

    async def clear_suggestions(self) -> "ConversationSession":
        self._orchestrator.state.require_conversation(self.conversation_id)
        await self._orchestrator.store.update(self.conversation_id, suggestions=None)
        return self

    async def cancel(self) -> "ConversationSession":
        await self._orchestrator.cancel(self.conversation_id)
        return self

    # ------------------------------------------------------------------
    # Generation cycles
    # ------------------------------------------------------------------

    async def send(
        self,
        prompt: str,
        *,
        images: Sequence[bytes | ImagePart] = (),
        context: Mapping[str, str] | None = None,
        tool_choice: ToolChoice | None = None,
        stream: bool = True,
    ) -> "ConversationSession":
        """Append a user turn and run the full generation flow for it.

        Empty prompts without images are ignored. The cycle slot is claimed
        before the user turn is written, so a busy conversation is left
        untouched. With suggestions enabled the state goes from generation
        straight to ``suggesting`` and only then back to ``idle``. A title
        follows when enabled and the main cycle succeeded.
        """

        orchestrator = self._orchestrator
        merged_context = {**default_context(), **dict(context or {})}
        text = render_template(prompt or "", merged_context).strip()
        if not text and not images:
            LOGGER.debug("Ignoring empty prompt for conversation %s", self.conversation_id)
            return self

        conversation = orchestrator.state.require_conversation(self.conversation_id)
        model = orchestrator.state.resolve_model(conversation)
        chat = orchestrator.require_chat()
        suggest = orchestrator.config.suggestions_enabled

        async with orchestrator.cycles.claim(self.conversation_id, "generation") as cycle:
            run_id = new_id()
            contents: list[Any] = [TextPart(text)] if text else []
            contents.extend(item if isinstance(item, ImagePart) else ImagePart(data=item) for item in images)
            await self.append(Message(role=Role.USER, contents=contents, run_id=run_id))
            await self.clear_suggestions()

            completed = await self._generate(
                cycle,
                stream=stream,
                tool_choice=tool_choice,
                run_id=run_id,
                context=merged_context,
                settle=not suggest,
            )
            if not completed:
                return self
            if suggest:
                await self._suggest(cycle, chat, model)

        if orchestrator.config.titles_enabled:
            await self.generate_title()
        return self

    async def generate_stream(
        self,
        *,
        tool_choice: ToolChoice | None = None,
        run_id: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> "ConversationSession":
        """Run a streamed cycle, resolving tool calls until a final reply arrives."""

        return await self._run_cycle(stream=True, tool_choice=tool_choice, run_id=run_id, context=context)

    async def generate(
        self,
        *,
        tool_choice: ToolChoice | None = None,
        run_id: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> "ConversationSession":
        """Run a whole-message cycle with the same tool loop as :meth:`generate_stream`."""

        return await self._run_cycle(stream=False, tool_choice=tool_choice, run_id=run_id, context=context)

    async def generate_suggestions(self) -> "ConversationSession":
        """Store up to ``max_suggestions`` suggested replies.

        Requires a finished assistant reply as the latest assistant turn.
        Decode and transport failures are logged and leave suggestions unset.
        """

        orchestrator = self._orchestrator
        conversation = orchestrator.state.require_conversation(self.conversation_id)
        model = orchestrator.state.resolve_model(conversation)
        chat = orchestrator.require_chat()

        async with orchestrator.cycles.claim(self.conversation_id, "suggestions") as cycle:
            await self._suggest(cycle, chat, model)
        return self

    async def generate_title(self, *, force: bool = False) -> "ConversationSession":
        """Set a title when the conversation has none (or ``force`` is set).

        An empty result never overwrites an existing title. Only the title
        field is written, so this may run alongside another cycle.
        """

        orchestrator = self._orchestrator
        conversation = orchestrator.state.require_conversation(self.conversation_id)
        if conversation.title and not force:
            return self
        model = orchestrator.state.resolve_model(conversation)
        chat = orchestrator.require_chat()

        try:
            title = await TitleGenerator(chat).generate(model, conversation.messages)
        except MissingConversationError:
            raise
        except Exception as exc:
            LOGGER.warning("Title request failed for %s: %s", self.conversation_id, exc)
            return self
        if title:
            await orchestrator.store.update(self.conversation_id, title=title)
            LOGGER.debug("Titled conversation %s: %s", self.conversation_id, title)
        return self

    async def generate_image(self, prompt: str) -> "ConversationSession":
        """Append ``prompt`` as a user turn and answer it with generated images."""

        orchestrator = self._orchestrator
        text = (prompt or "").strip()
        if not text:
            return self
        orchestrator.state.require_conversation(self.conversation_id)
        if orchestrator.images is None:
            raise MissingServiceError("image")
        model = orchestrator.config.image_model
        if not model:
            raise MissingModelError(self.conversation_id)

        async with orchestrator.cycles.claim(self.conversation_id, "image") as cycle:
            self.last_error = None
            await orchestrator.store.update(self.conversation_id, error=None)
            await orchestrator.state.transition(self.conversation_id, GenerationState.PROCESSING)
            run_id = new_id()
            await self.append(Message.text_message(Role.USER, text, run_id=run_id))
            try:
                images = await orchestrator.images.generate_images(model, text, count=orchestrator.config.image_count)
                cycle.token.raise_if_cancelled()
            except GenerationCancelled:
                await orchestrator.state.reset(self.conversation_id)
                return self
            except asyncio.CancelledError:
                await orchestrator.state.reset(self.conversation_id)
                raise
            except Exception as exc:
                await self._fail(exc)
                return self

            contents: list[Any] = [ImagePart(data=data, format="png", detail=text) for data in images]
            contents.append(TextPart(IMAGE_RESPONSE_TEXT.format(prompt=text)))
            reply = Message(role=Role.ASSISTANT, contents=contents, run_id=run_id, finish_reason=FinishReason.STOP)
            await orchestrator.store.upsert_message(reply, self.conversation_id)
            await orchestrator.state.transition(self.conversation_id, GenerationState.IDLE)
        return self

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_cycle(
        self,
        *,
        stream: bool,
        tool_choice: ToolChoice | None,
        run_id: str | None,
        context: Mapping[str, str] | None,
    ) -> "ConversationSession":
        orchestrator = self._orchestrator
        conversation = orchestrator.state.require_conversation(self.conversation_id)
        orchestrator.state.resolve_model(conversation)
        orchestrator.require_chat()

        async with orchestrator.cycles.claim(self.conversation_id, "generation") as cycle:
            await self._generate(cycle, stream=stream, tool_choice=tool_choice, run_id=run_id, context=context)
        return self

    async def _generate(
        self,
        cycle: Cycle,
        *,
        stream: bool,
        tool_choice: ToolChoice | None,
        run_id: str | None,
        context: Mapping[str, str] | None,
        settle: bool = True,
    ) -> bool:
        """Run the tool loop inside an already claimed ``cycle``.

        Returns ``True`` when a final reply was stored. Failures and
        cancellation leave the conversation idle. A successful cycle ends idle
        only when ``settle`` is set; otherwise it stays in its generation
        state for the caller to move on from.
        """

        orchestrator = self._orchestrator
        chat = orchestrator.require_chat()
        self.last_error = None
        self.cancelled = False
        conversation = orchestrator.state.require_conversation(self.conversation_id)
        run_id = run_id or _current_run_id(conversation.messages)
        context = {**default_context(), **dict(context or {})}
        if conversation.state is not GenerationState.IDLE:
            LOGGER.debug("Resetting stale %s state for %s", conversation.state.value, self.conversation_id)
            await orchestrator.state.reset(self.conversation_id)
        conversation, model = await orchestrator.state.begin(self.conversation_id)
        await orchestrator.store.update(self.conversation_id, error=None)
        log_run = orchestrator.event_logger.start_run(
            run_id=run_id,
            conversation_id=self.conversation_id,
            model=model,
            history=[message.to_dict() for message in conversation.messages],
        )

        async def request(choice: ToolChoice | None, round_index: int) -> Message:
            return await self._request(
                chat,
                model,
                choice,
                round_index=round_index,
                stream=stream,
                run_id=run_id,
                context=context,
                cycle=cycle,
                log_run=log_run,
            )

        async def persist(message: Message) -> Any:
            return await orchestrator.store.upsert_message(message, self.conversation_id)

        try:
            with log_run:
                outcome = await orchestrator.tool_loop.run(
                    request,
                    persist,
                    run_id=run_id,
                    tool_choice=tool_choice,
                    token=cycle.token,
                    log_run=log_run,
                )
                log_run.log_completion(response_text=outcome.message.text or "", tool_rounds=outcome.rounds)
        except GenerationCancelled:
            LOGGER.info("Generation cancelled for %s", self.conversation_id)
            await self._finish_cancelled(cycle)
            return False
        except asyncio.CancelledError:
            LOGGER.info("Generation task cancelled for %s", self.conversation_id)
            await self._finish_cancelled(cycle)
            raise
        except MissingConversationError:
            raise
        except ToolLoopExceededError as exc:
            await self._fail(exc)
            return False
        except Exception as exc:
            LOGGER.error("Generation failed for %s: %s", self.conversation_id, exc, exc_info=True)
            await self._fail(exc)
            return False

        if settle:
            await orchestrator.state.transition(self.conversation_id, GenerationState.IDLE)
        return True

    async def _suggest(self, cycle: Cycle, chat: ChatService, model: str) -> None:
        """Store suggestions inside an already claimed ``cycle``; always ends idle."""

        orchestrator = self._orchestrator
        generator = SuggestionGenerator(chat, max_suggestions=orchestrator.config.max_suggestions)
        try:
            conversation = orchestrator.state.require_conversation(self.conversation_id)
            if not _has_completed_reply(conversation.messages):
                LOGGER.debug("Skipping suggestions for %s: no completed assistant reply", self.conversation_id)
                return
            await orchestrator.state.transition(self.conversation_id, GenerationState.SUGGESTING)
            suggestions = await generator.generate(model, conversation.messages)
            cycle.token.raise_if_cancelled()
        except DecodeError as exc:
            LOGGER.warning("Discarding undecodable suggestions for %s: %s", self.conversation_id, exc)
        except GenerationCancelled:
            LOGGER.debug("Suggestions cancelled for %s", self.conversation_id)
        except MissingConversationError:
            raise
        except Exception as exc:
            LOGGER.warning("Suggestion request failed for %s: %s", self.conversation_id, exc)
        else:
            await orchestrator.store.update(self.conversation_id, suggestions=suggestions)
        finally:
            await orchestrator.state.reset(self.conversation_id)

    async def _request(
        self,
        chat: ChatService,
        model: str,
        choice: ToolChoice | None,
        *,
        round_index: int,
        stream: bool,
        run_id: str,
        context: Mapping[str, str],
        cycle: Cycle,
        log_run: ChatEventLogRun | NullChatEventLogRun,
    ) -> Message:
        orchestrator = self._orchestrator
        token: CancellationToken = cycle.token
        token.raise_if_cancelled()
        await orchestrator.state.transition(self.conversation_id, GenerationState.PROCESSING)

        conversation = orchestrator.state.require_conversation(self.conversation_id)
        history = build_history(conversation, context=context)
        tools: list[dict[str, Any]] = []
        if orchestrator.tools is not None and conversation.tool_ids:
            tools = orchestrator.tools.tool_definitions(sorted(conversation.tool_ids))
        forced = choice if tools else None
        log_run.log_request(
            turn_index=round_index,
            model=model,
            message_count=len(history),
            tool_names=[tool["function"]["name"] for tool in tools],
            tool_choice=forced,
            streamed=stream,
        )
        LOGGER.debug(
            "Request %s for %s: %s message(s), %s tool(s)",
            round_index,
            self.conversation_id,
            len(history),
            len(tools),
        )

        message_id = new_id()
        if not stream:
            reply = await chat.complete(model, history, tools=tools or None, tool_choice=forced)
            token.raise_if_cancelled()
            message = replace(reply, id=message_id, role=Role.ASSISTANT, run_id=run_id, done=True)
            await orchestrator.store.upsert_message(message, self.conversation_id)
            return message

        current: Message | None = None
        async for chunk in chat.complete_stream(model, history, tools=tools or None, tool_choice=forced):
            token.raise_if_cancelled()
            if current is None:
                current = Message(role=Role.ASSISTANT, id=message_id, run_id=run_id, done=False)
                await orchestrator.state.transition(self.conversation_id, GenerationState.STREAMING)
            current = current.apply(chunk)
            cycle.partial = current
            await orchestrator.store.upsert_message(current, self.conversation_id)

        if current is None:
            raise GenerationError("Model returned an empty stream")
        if not current.done:
            current = replace(current, done=True)
            await orchestrator.store.upsert_message(current, self.conversation_id)
        cycle.partial = None
        return current

    async def _fail(self, exc: BaseException) -> None:
        """Attach a user-visible error and return to idle, keeping partial output."""

        error = exc if isinstance(exc, GenerationError) else GenerationError(str(exc) or exc.__class__.__name__, cause=exc)
        self.last_error = error
        if self._orchestrator.store.get(self.conversation_id) is None:
            return
        await self._orchestrator.store.update(
            self.conversation_id,
            error=str(error),
            state=GenerationState.IDLE,
        )

    async def _finish_cancelled(self, cycle: Cycle) -> None:
        self.cancelled = True
        orchestrator = self._orchestrator
        if orchestrator.store.get(self.conversation_id) is None:
            return
        partial = cycle.partial
        if partial is not None and not partial.done:
            stopped = replace(partial, done=True, finish_reason=FinishReason.CANCELLED)
            await orchestrator.store.upsert_message(stopped, self.conversation_id)
            cycle.partial = None
        await orchestrator.state.reset(self.conversation_id)


def _current_run_id(messages: Sequence[Message]) -> str:
    """Run id of the latest user turn, so replies group with it."""

    for message in reversed(messages):
        if message.role is Role.USER:
            return message.run_id or message.id
    return new_id()


def _has_completed_reply(messages: Sequence[Message]) -> bool:
    for message in reversed(messages):
        if message.role is Role.ASSISTANT:
            return message.done and not message.tool_calls and not message.is_empty
    return False


__all__ = ["ConversationSession", "GenerationOrchestrator", "OrchestratorConfig"]
