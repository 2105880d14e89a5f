"""Chat and message data models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from parley.chat_runtime.models.enums import TERMINAL_STOP_REASONS

# -- Usage -------------------------------------------------------------------


class TokenCounts(BaseModel):
    input: int = 0
    output: int = 0
    input_cache_hit: int = 0


# -- Messages ----------------------------------------------------------------


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    content: str


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    model: str
    content: str
    reasoning: str | None = None
    search: bool | None = Field(default=None, description="Whether web search was on when this was generated")
    tokens: TokenCounts = Field(default_factory=TokenCounts)
    stop_reason: str
    cost: float = 0.0
    time_ms: float = 0.0

    @property
    def terminal(self) -> bool:
        """True when the turn ended by stop, interruption or error."""
        return self.stop_reason in TERMINAL_STOP_REASONS


ChatMessage = Annotated[UserMessage | AssistantMessage, Field(discriminator="role")]


# -- Chat --------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Chat(BaseModel):
    """One conversation thread.

    ``id`` is assigned by the chat store on first write.  The system prompt
    is fixed for the lifetime of the chat; changing it mid-conversation
    would require annotating every message with the prompt in effect.
    """

    id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    system_prompt: str = ""
    messages: list[ChatMessage] = Field(default_factory=list)

    @property
    def is_dirty(self) -> bool:
        return len(self.messages) > 0

    @property
    def blocked(self) -> bool:
        """A chat ending in a stopped, interrupted or failed turn accepts no new input."""
        if not self.messages:
            return False
        last = self.messages[-1]
        return isinstance(last, AssistantMessage) and last.terminal

    def last_assistant(self) -> AssistantMessage | None:
        for message in reversed(self.messages):
            if isinstance(message, AssistantMessage):
                return message
        return None
