"""Shared enumerations used across the chat runtime."""

from __future__ import annotations

from enum import StrEnum

# -- Providers ---------------------------------------------------------------


class Provider(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


# -- Messages ----------------------------------------------------------------


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class StopReason(StrEnum):
    """Stop reasons produced locally by the coordinator.

    Providers report their own completion value (``end_turn``, ``STOP``,
    ``completed``, ...); these three mark a turn that did not complete and
    block the chat until it is forked or regenerated.
    """

    STOPPED = "stopped"
    INTERRUPTED = "interrupted"
    ERROR = "error"


TERMINAL_STOP_REASONS = frozenset(StopReason)


# -- Requests ----------------------------------------------------------------


class CancelCause(StrEnum):
    """Why an in-flight request was cancelled."""

    SUPERSEDED = "superseded"
    USER_STOP = "user_stop"
    INTERRUPTED = "interrupted"


# -- Events ------------------------------------------------------------------


class ChatEvent(StrEnum):
    """Change notifications delivered to session store listeners."""

    CHATS_CHANGED = "chats_changed"
    FOCUS_CHANGED = "focus_changed"
    LOADING_CHANGED = "loading_changed"
    MESSAGE_APPENDED = "message_appended"
