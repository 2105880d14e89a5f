"""Anthropic Messages API adapter."""

from __future__ import annotations

from urllib.parse import urlsplit

from pydantic_ai.builtin_tools import WebSearchTool
from pydantic_ai.messages import BuiltinToolCallPart, ModelResponse, TextPart
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.models.anthropic import AnthropicModel, AnthropicModelSettings
from pydantic_ai.providers.anthropic import AnthropicProvider
from pydantic_ai.settings import ModelSettings

from parley.chat_runtime.models.catalog import ModelDescriptor, reasoning_profile
from parley.chat_runtime.models.enums import Provider
from parley.chat_runtime.providers.base import WEB_SEARCH, ChatInput, ProviderAdapter, search_results

MAX_SEARCHES = 5


class AnthropicAdapter(ProviderAdapter):
    """Claude models.

    Thinking is always enabled; the reasoning toggle only changes the budget,
    with the smallest budget the API accepts as the default.  Each search is
    rendered inline ahead of the text it informed: the query, then links to
    the pages it returned, labelled by domain.
    """

    provider = Provider.ANTHROPIC
    fallback_stop_reason = "unknown"

    def build_model(self, model: ModelDescriptor, api_key: str) -> Model:
        return AnthropicModel(model.key, provider=AnthropicProvider(api_key=api_key))

    def model_settings(self, request: ChatInput) -> ModelSettings:
        profile = reasoning_profile(self.provider, think=request.think)
        return AnthropicModelSettings(
            max_tokens=self._max_tokens,
            anthropic_thinking={"type": "enabled", "budget_tokens": profile["budget_tokens"]},
        )

    def request_parameters(self, request: ChatInput) -> ModelRequestParameters:
        if request.search:
            return ModelRequestParameters(builtin_tools=[WebSearchTool(max_uses=MAX_SEARCHES)])
        return ModelRequestParameters()

    def render_content(self, response: ModelResponse) -> str:
        chunks: list[str] = []
        for part in response.parts:
            if isinstance(part, TextPart):
                chunks.append(part.content)
            elif isinstance(part, BuiltinToolCallPart) and part.tool_name == WEB_SEARCH:
                query = part.args_as_dict().get("query")
                if query:
                    chunks.append(f"**Search:** {query}\n\n")
            elif links := _source_links(search_results(part)):
                chunks.append(f"**Sources:** {links}\n\n")
        return "".join(chunks)


def _source_links(results: list[dict]) -> str:
    links: list[str] = []
    seen: set[str] = set()
    for result in results:
        url = result.get("url")
        if not url or url in seen:
            continue
        seen.add(url)
        links.append(f"[{_domain(url)}]({url})")
    return ", ".join(links)


def _domain(url: str) -> str:
    host = urlsplit(url).hostname or url
    return host.removeprefix("www.")
