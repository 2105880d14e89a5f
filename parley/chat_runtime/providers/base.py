"""Provider adapter contract and the shared pydantic-ai plumbing.

Every backend turns a chat into a single model request through
``pydantic_ai.direct.model_request`` and normalizes the response into a
``ModelReply``.  Subclasses only decide how the model is built and which
backend-specific settings the toggles map to.

Contract (all adapters):

- Missing credential -> ``MissingCredentialError`` before any network call.
- The cancellation token is checked before the call and the call runs
  through ``token.run`` so cancelling aborts the transport.
- Thinking parts map to ``reasoning``, text parts to ``content``; web search
  sources are rendered into ``content`` by the backend that reports them.
- Tokens normalize to ``TokenCounts`` (0 cache hits when not reported).
- Missing stop signal -> ``fallback_stop_reason``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic_ai.builtin_tools import WebSearchTool
from pydantic_ai.direct import model_request
from pydantic_ai.messages import (
    BuiltinToolCallPart,
    BuiltinToolReturnPart,
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ThinkingPart,
    UserPromptPart,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.settings import ModelSettings

from parley.chat_runtime.context import CancellationToken
from parley.chat_runtime.models.chat import AssistantMessage, ChatMessage, TokenCounts
from parley.chat_runtime.models.enums import Provider

if TYPE_CHECKING:
    from parley.chat_runtime.credentials import CredentialLookup
    from parley.chat_runtime.models.catalog import ModelDescriptor

logger = logging.getLogger(__name__)

WEB_SEARCH = "web_search"

_PROVIDER_NAMES = {
    Provider.OPENAI: "OpenAI",
    Provider.ANTHROPIC: "Anthropic",
    Provider.GOOGLE: "Google",
}

_KEY_HINTS = {
    Provider.OPENAI: "PARLEY_OPENAI_API_KEY or OPENAI_API_KEY",
    Provider.ANTHROPIC: "PARLEY_ANTHROPIC_API_KEY or ANTHROPIC_API_KEY",
    Provider.GOOGLE: "PARLEY_GOOGLE_API_KEY or GOOGLE_API_KEY",
}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class MissingCredentialError(LookupError):
    """Raised when the API key for a provider is not configured."""

    def __init__(self, provider: Provider) -> None:
        super().__init__(f"{_PROVIDER_NAMES[provider]} API key not found (set {_KEY_HINTS[provider]})")
        self.provider = provider


class UnsupportedProviderError(LookupError):
    """Raised when no adapter is registered for a provider."""


# ---------------------------------------------------------------------------
# Input / output
# ---------------------------------------------------------------------------


@dataclass
class ChatInput:
    """Everything an adapter needs for one request."""

    history: Sequence[ChatMessage]
    """Conversation before the new user message."""
    text: str
    model: ModelDescriptor
    system_prompt: str = ""
    search: bool = False
    think: bool = False
    token: CancellationToken = field(default_factory=CancellationToken)


@dataclass
class ModelReply:
    """Normalized adapter result."""

    content: str
    tokens: TokenCounts
    stop_reason: str
    reasoning: str | None = None
    searches: int = 0


# ---------------------------------------------------------------------------
# Message mapping
# ---------------------------------------------------------------------------


def to_model_messages(system_prompt: str, history: Sequence[ChatMessage], text: str) -> list[ModelMessage]:
    """Map a chat log plus the new user text to pydantic-ai messages.

    The system prompt rides on the first request.  Assistant turns are
    replayed as plain text; their reasoning is not sent back.
    """
    messages: list[ModelMessage] = []
    pending_system = [SystemPromptPart(content=system_prompt)] if system_prompt else []

    for message in history:
        if isinstance(message, AssistantMessage):
            messages.append(ModelResponse(parts=[TextPart(content=message.content)], model_name=message.model))
        else:
            messages.append(ModelRequest(parts=[*pending_system, UserPromptPart(content=message.content)]))
            pending_system = []

    messages.append(ModelRequest(parts=[*pending_system, UserPromptPart(content=text)]))
    return messages


def _join(chunks: Sequence[str]) -> str:
    return "\n\n".join(chunk for chunk in chunks if chunk)


def search_results(part: object) -> list[dict[str, Any]]:
    """Result entries carried by a web search return part; empty for any other part.

    Entries keep the backend's own keys (``url`` for Anthropic, ``uri`` for
    Google) alongside ``title``.
    """
    if not isinstance(part, BuiltinToolReturnPart) or part.tool_name != WEB_SEARCH:
        return []
    if not isinstance(part.content, list):
        return []
    return [entry for entry in part.content if isinstance(entry, dict)]


# ---------------------------------------------------------------------------
# Adapter base
# ---------------------------------------------------------------------------


class ProviderAdapter(ABC):
    """One remote backend behind the uniform ``create_message`` signature."""

    provider: ClassVar[Provider]
    fallback_stop_reason: ClassVar[str] = "stop"

    def __init__(self, credentials: CredentialLookup, *, max_tokens: int = 8192) -> None:
        self._credentials = credentials
        self._max_tokens = max_tokens

    # -- Hooks -----------------------------------------------------------------

    @abstractmethod
    def build_model(self, model: ModelDescriptor, api_key: str) -> Model:
        """Construct the pydantic-ai model for *model* using *api_key*."""

    @abstractmethod
    def model_settings(self, request: ChatInput) -> ModelSettings:
        """Backend settings for the request's reasoning/search toggles."""

    def request_parameters(self, request: ChatInput) -> ModelRequestParameters:
        if request.search:
            return ModelRequestParameters(builtin_tools=[WebSearchTool()])
        return ModelRequestParameters()

    def render_content(self, response: ModelResponse) -> str:
        return _join([p.content for p in response.parts if isinstance(p, TextPart)])

    # -- Contract --------------------------------------------------------------

    def require_key(self) -> str:
        key = self._credentials.get_key(self.provider)
        if not key:
            raise MissingCredentialError(self.provider)
        return key

    async def create_message(self, request: ChatInput) -> ModelReply:
        api_key = self.require_key()
        request.token.raise_if_cancelled()

        model = self.build_model(request.model, api_key)
        messages = to_model_messages(request.system_prompt, request.history, request.text)
        logger.debug(
            "Requesting %s (%s): %d messages, search=%s, think=%s",
            request.model.key,
            self.provider,
            len(messages),
            request.search,
            request.think,
        )

        response = await request.token.run(
            model_request(
                model,
                messages,
                model_settings=self.model_settings(request),
                model_request_parameters=self.request_parameters(request),
            )
        )
        return self.parse_response(response)

    def parse_response(self, response: ModelResponse) -> ModelReply:
        reasoning = _join([p.content for p in response.parts if isinstance(p, ThinkingPart)])
        searches = sum(1 for p in response.parts if isinstance(p, BuiltinToolCallPart) and p.tool_name == WEB_SEARCH)

        usage = response.usage
        tokens = TokenCounts(
            input=usage.input_tokens or 0,
            output=usage.output_tokens or 0,
            input_cache_hit=usage.cache_read_tokens or 0,
        )

        return ModelReply(
            content=self.render_content(response),
            reasoning=reasoning or None,
            tokens=tokens,
            stop_reason=self._stop_reason(response),
            searches=searches,
        )

    def _stop_reason(self, response: ModelResponse) -> str:
        details = response.provider_details or {}
        raw = details.get("finish_reason")
        if raw:
            return str(raw)
        if response.finish_reason:
            return str(response.finish_reason)
        return self.fallback_stop_reason
