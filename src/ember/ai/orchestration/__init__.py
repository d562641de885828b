"""Generation orchestration: cycles, state, tool loop and auxiliary generators."""

from .cycles import CancellationToken, Cycle, CycleRegistry
from .event_log import ChatEventLogger, ChatEventLogRun, NullChatEventLogRun
from .message_builder import build_history, drop_unanswered_tool_calls, filter_outbound
from .orchestrator import ConversationSession, GenerationOrchestrator, OrchestratorConfig
from .state import GenerationStateMachine, can_transition
from .suggestions import SuggestionGenerator, parse_suggestions, strip_code_fence
from .titles import TitleGenerator, parse_title
from .tool_loop import LoopOutcome, ToolCallLoop

__all__ = [
    # orchestrator.py
    "ConversationSession",
    "GenerationOrchestrator",
    "OrchestratorConfig",
    # state.py
    "GenerationStateMachine",
    "can_transition",
    # cycles.py
    "CancellationToken",
    "Cycle",
    "CycleRegistry",
    # tool_loop.py
    "LoopOutcome",
    "ToolCallLoop",
    # message_builder.py
    "build_history",
    "drop_unanswered_tool_calls",
    "filter_outbound",
    # suggestions.py / titles.py
    "SuggestionGenerator",
    "TitleGenerator",
    "parse_suggestions",
    "parse_title",
    "strip_code_fence",
    # event_log.py
    "ChatEventLogger",
    "ChatEventLogRun",
    "NullChatEventLogRun",
]
