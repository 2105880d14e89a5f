"""Per-provider credential lookup.

Lookups are synchronous so adapters can detect a missing key before any
network attempt.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from parley.chat_runtime.models.enums import Provider
from parley.chat_runtime.settings import ParleySettings


class CredentialLookup(Protocol):
    def get_key(self, provider: Provider) -> str | None:
        """Return the secret for *provider*, or ``None`` when absent."""
        ...


class SettingsCredentials:
    """Reads API keys from ``ParleySettings``."""

    def __init__(self, settings: ParleySettings) -> None:
        self._settings = settings

    def get_key(self, provider: Provider) -> str | None:
        return self._settings.api_key(provider)


class StaticCredentials:
    """Fixed key mapping, for embedding applications and tests."""

    def __init__(self, keys: Mapping[Provider, str] | None = None) -> None:
        self._keys = dict(keys or {})

    def get_key(self, provider: Provider) -> str | None:
        return self._keys.get(provider) or None
