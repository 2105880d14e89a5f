"""Model catalog and per-provider reasoning profiles.

Prices are USD per million tokens, except ``search`` which is USD per
search call.  The catalog order matters: preferred models go first, and
``find_model`` returns the first model whose id or key contains the query.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from parley.chat_runtime.models.enums import Provider

if TYPE_CHECKING:
    from parley.chat_runtime.credentials import CredentialLookup


class ModelDescriptor(BaseModel):
    """One selectable model and its price table."""

    provider: Provider
    key: str = Field(description="Model name passed to the provider API")
    id: str = Field(description="Human-readable nickname, also used as a unique id")
    input: float
    output: float
    input_cached: float | None = None
    search: float = 0.0


MODELS: list[ModelDescriptor] = [
    ModelDescriptor(
        provider=Provider.GOOGLE,
        key="gemini-3-pro-preview",
        id="Gemini 3 Pro",
        input=2.0,
        input_cached=0.5,
        output=12.0,
        search=0.035,
    ),
    ModelDescriptor(
        provider=Provider.OPENAI,
        key="gpt-5.1",
        id="GPT-5.1",
        input=1.25,
        input_cached=0.125,
        output=10.0,
        search=0.01,
    ),
    ModelDescriptor(
        provider=Provider.ANTHROPIC,
        key="claude-sonnet-4-5",
        id="Sonnet 4.5",
        input=3.0,
        input_cached=0.3,
        output=15.0,
        search=0.01,
    ),
    ModelDescriptor(
        provider=Provider.ANTHROPIC,
        key="claude-opus-4-5",
        id="Opus 4.5",
        input=5.0,
        input_cached=0.5,
        output=25.0,
        search=0.01,
    ),
]


def find_model(query: str, models: Sequence[ModelDescriptor] = MODELS) -> ModelDescriptor | None:
    """Return the first model whose id or key contains *query* (case-insensitive)."""
    needle = query.strip().lower()
    if not needle:
        return None
    for model in models:
        if needle in model.id.lower() or needle in model.key.lower():
            return model
    return None


def available_models(
    credentials: CredentialLookup, models: Sequence[ModelDescriptor] = MODELS
) -> list[ModelDescriptor]:
    """Models whose provider has a key in *credentials*, in catalog order."""
    return [model for model in models if credentials.get_key(model.provider)]


# -- Reasoning profiles -------------------------------------------------------

# Maps the UI-level "reasoning" toggle to each backend's native setting.
# Keyed by provider, then by whether extended reasoning was requested.
# Provider APIs have changed these knobs several times; keep them here
# rather than in the adapters.
REASONING_PROFILES: dict[Provider, dict[bool, dict[str, Any]]] = {
    Provider.OPENAI: {
        True: {"effort": "low"},
        False: {"effort": "minimal"},
    },
    Provider.ANTHROPIC: {
        True: {"budget_tokens": 4096},
        False: {"budget_tokens": 1024},
    },
    Provider.GOOGLE: {
        True: {"thinking_level": "high"},
        False: {"thinking_level": "low"},
    },
}


def reasoning_profile(provider: Provider, *, think: bool) -> dict[str, Any]:
    return dict(REASONING_PROFILES[provider][think])
