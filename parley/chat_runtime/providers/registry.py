"""Adapter registry -- maps providers to adapter instances."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol

from parley.chat_runtime.models.enums import Provider
from parley.chat_runtime.providers.anthropic import AnthropicAdapter
from parley.chat_runtime.providers.base import ChatInput, ModelReply, UnsupportedProviderError
from parley.chat_runtime.providers.google import GoogleAdapter
from parley.chat_runtime.providers.openai import OpenAIAdapter

if TYPE_CHECKING:
    from parley.chat_runtime.credentials import CredentialLookup


class Adapter(Protocol):
    """Structural type of anything the registry can dispatch to."""

    provider: Provider

    async def create_message(self, request: ChatInput) -> ModelReply: ...


class AdapterRegistry:
    def __init__(self, adapters: Iterable[Adapter] = ()) -> None:
        self._adapters: dict[Provider, Adapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: Adapter) -> None:
        self._adapters[adapter.provider] = adapter

    def get(self, provider: Provider) -> Adapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            msg = f"Unsupported provider: {provider}"
            raise UnsupportedProviderError(msg)
        return adapter

    async def create_message(self, request: ChatInput) -> ModelReply:
        return await self.get(request.model.provider).create_message(request)


def build_adapters(credentials: CredentialLookup, *, max_tokens: int = 8192) -> AdapterRegistry:
    """Registry with the three built-in backends."""
    return AdapterRegistry([
        OpenAIAdapter(credentials, max_tokens=max_tokens),
        AnthropicAdapter(credentials, max_tokens=max_tokens),
        GoogleAdapter(credentials, max_tokens=max_tokens),
    ])
