"""Cost accounting for a single assistant turn."""

from __future__ import annotations

from parley.chat_runtime.models.catalog import ModelDescriptor
from parley.chat_runtime.models.chat import TokenCounts

PER_MILLION = 1_000_000


def get_cost(model: ModelDescriptor, tokens: TokenCounts, searches: int = 0) -> float:
    """Return the USD cost of one turn.

    When the model has a cached-input price and the usage reports cache
    hits, the hit portion is charged at the cached rate and the remainder
    of the input at the full rate.
    """
    if model.input_cached and tokens.input_cache_hit:
        input_cost = model.input_cached * tokens.input_cache_hit + model.input * (
            tokens.input - tokens.input_cache_hit
        )
    else:
        input_cost = model.input * tokens.input

    token_cost = (input_cost + model.output * tokens.output) / PER_MILLION
    return token_cost + model.search * searches
