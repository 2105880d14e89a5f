"""Google Gemini adapter."""

from __future__ import annotations

from pydantic_ai.builtin_tools import WebFetchTool, WebSearchTool
from pydantic_ai.messages import ModelResponse
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.models.google import GoogleModel, GoogleModelSettings
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.settings import ModelSettings

from parley.chat_runtime.models.catalog import ModelDescriptor, reasoning_profile
from parley.chat_runtime.models.enums import Provider
from parley.chat_runtime.providers.base import ChatInput, ProviderAdapter, search_results


class GoogleAdapter(ProviderAdapter):
    """Gemini models.

    URL context is always on so links pasted into a message are read; the
    search toggle adds Google Search grounding, whose sources are listed
    after the reply.
    """

    provider = Provider.GOOGLE
    fallback_stop_reason = "STOP"

    def build_model(self, model: ModelDescriptor, api_key: str) -> Model:
        return GoogleModel(model.key, provider=GoogleProvider(api_key=api_key))

    def model_settings(self, request: ChatInput) -> ModelSettings:
        profile = reasoning_profile(self.provider, think=request.think)
        return GoogleModelSettings(
            max_tokens=self._max_tokens,
            google_thinking_config={"include_thoughts": True, **profile},
        )

    def request_parameters(self, request: ChatInput) -> ModelRequestParameters:
        if request.search:
            return ModelRequestParameters(builtin_tools=[WebFetchTool(), WebSearchTool()])
        return ModelRequestParameters(builtin_tools=[WebFetchTool()])

    def render_content(self, response: ModelResponse) -> str:
        content = super().render_content(response)
        sources = [r for part in response.parts for r in search_results(part) if r.get("uri")]
        if not sources:
            return content
        lines = "\n".join(f"- [{r.get('title') or r['uri']}]({r['uri']})" for r in sources)
        return f"{content}\n\n### Sources\n\n{lines}"
