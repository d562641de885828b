"""AI client, service contracts and prompts."""

from .ai_types import ChatService, ImageService, ToolChoice, ToolExecutor
from .client import AIClient, AIStreamEvent, ClientSettings

__all__ = [
    "AIClient",
    "AIStreamEvent",
    "ChatService",
    "ClientSettings",
    "ImageService",
    "ToolChoice",
    "ToolExecutor",
]
