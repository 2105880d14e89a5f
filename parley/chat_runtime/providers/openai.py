"""OpenAI Responses API adapter."""

from __future__ import annotations

from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIResponsesModel, OpenAIResponsesModelSettings
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from parley.chat_runtime.models.catalog import ModelDescriptor, reasoning_profile
from parley.chat_runtime.models.enums import Provider
from parley.chat_runtime.providers.base import ChatInput, ProviderAdapter


class OpenAIAdapter(ProviderAdapter):
    """GPT models via the Responses API.

    Web search needs at least low reasoning effort, so searching raises the
    effort the same way the reasoning toggle does.
    """

    provider = Provider.OPENAI
    fallback_stop_reason = "completed"

    def build_model(self, model: ModelDescriptor, api_key: str) -> Model:
        return OpenAIResponsesModel(model.key, provider=OpenAIProvider(api_key=api_key))

    def model_settings(self, request: ChatInput) -> ModelSettings:
        profile = reasoning_profile(self.provider, think=request.think or request.search)
        return OpenAIResponsesModelSettings(
            max_tokens=self._max_tokens,
            openai_reasoning_effort=profile["effort"],
        )
