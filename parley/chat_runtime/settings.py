"""Runtime configuration loaded from PARLEY_* environment variables."""

from __future__ import annotations

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from parley.chat_runtime.models.enums import Provider


class ParleySettings(BaseSettings):
    """Parley chat runtime settings.

    All fields are read from environment variables with the ``PARLEY_`` prefix.
    For example, ``PARLEY_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Provider API keys also accept each provider's conventional variable
    (``OPENAI_API_KEY``, ``ANTHROPIC_API_KEY``, ``GOOGLE_API_KEY``).
    """

    model_config = SettingsConfigDict(
        env_prefix="PARLEY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "WARNING"

    log_file: str | None = None
    """Write logs to this file (rotated at 5 MB) instead of stderr."""

    # -- Data storage ----------------------------------------------------------
    data_root: str = "./data"
    """Root directory for stored chats."""

    data_prefix: str | None = None
    """Optional namespace prefix inserted into all data paths.

    When set, chats live under ``{data_root}/{data_prefix}/chats/``.
    """

    # -- Chat defaults ---------------------------------------------------------
    default_model: str | None = None
    """Model id or key fragment (see ``find_model``).  First catalog entry if unset."""

    web_search: bool = True
    reasoning: bool = False
    max_tokens: int = 8192

    system_prompt: str | None = None
    """Jinja2 template for new chats.  Falls back to the built-in prompt."""

    # -- Provider keys ---------------------------------------------------------
    openai_api_key: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("PARLEY_OPENAI_API_KEY", "OPENAI_API_KEY")
    )
    anthropic_api_key: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("PARLEY_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY")
    )
    google_api_key: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("PARLEY_GOOGLE_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY")
    )

    # -- Shutdown --------------------------------------------------------------
    graceful_shutdown_timeout: float = 30.0
    """Seconds to wait for in-flight requests before interrupting them."""

    # -- Helpers ---------------------------------------------------------------

    def api_key(self, provider: Provider) -> str | None:
        """Return the configured secret for *provider*, or ``None`` if unset or blank."""
        secret: SecretStr | None = getattr(self, f"{provider.value}_api_key")
        if secret is None:
            return None
        value = secret.get_secret_value().strip()
        return value or None


def get_settings() -> ParleySettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> ParleySettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return ParleySettings()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
