"""Provider adapters.

- **base**: adapter contract, input/output types, pydantic-ai message mapping
- **openai**: OpenAI Responses API
- **anthropic**: Anthropic Messages API
- **google**: Google Gemini
- **registry**: provider -> adapter lookup
"""

from parley.chat_runtime.providers.anthropic import AnthropicAdapter
from parley.chat_runtime.providers.base import (
    ChatInput,
    MissingCredentialError,
    ModelReply,
    ProviderAdapter,
    UnsupportedProviderError,
)
from parley.chat_runtime.providers.google import GoogleAdapter
from parley.chat_runtime.providers.openai import OpenAIAdapter
from parley.chat_runtime.providers.registry import AdapterRegistry, build_adapters

__all__ = [
    "AdapterRegistry",
    "AnthropicAdapter",
    "ChatInput",
    "GoogleAdapter",
    "MissingCredentialError",
    "ModelReply",
    "OpenAIAdapter",
    "ProviderAdapter",
    "UnsupportedProviderError",
    "build_adapters",
]
