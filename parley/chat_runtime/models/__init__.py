"""Data models for the chat runtime."""

from parley.chat_runtime.models.catalog import (
    MODELS,
    REASONING_PROFILES,
    ModelDescriptor,
    find_model,
    reasoning_profile,
)
from parley.chat_runtime.models.chat import (
    AssistantMessage,
    Chat,
    ChatMessage,
    TokenCounts,
    UserMessage,
)
from parley.chat_runtime.models.enums import (
    TERMINAL_STOP_REASONS,
    CancelCause,
    ChatEvent,
    Provider,
    Role,
    StopReason,
)

__all__ = [
    "MODELS",
    "REASONING_PROFILES",
    "TERMINAL_STOP_REASONS",
    # Chat
    "AssistantMessage",
    # Enums
    "CancelCause",
    "Chat",
    "ChatEvent",
    "ChatMessage",
    # Catalog
    "ModelDescriptor",
    "Provider",
    "Role",
    "StopReason",
    "TokenCounts",
    "UserMessage",
    "find_model",
    "reasoning_profile",
]
