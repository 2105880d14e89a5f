"""System prompt rendering with Jinja2 template support.

New chats get their system prompt rendered once at creation; the rendered
text is stored on the chat and never re-rendered.

Template variables available:

- ``date``       : str -- current date (YYYY-MM-DD)
- ``model_name`` : str -- id of the selected model, or empty

Example template::

    Today's date is {{ date }}.
    {% if model_name %}You are running as {{ model_name }}.{% endif %}
"""

from __future__ import annotations

from datetime import UTC, datetime

import jinja2

SYSTEM_BASE = """\
- Answer the question precisely, without much elaboration
- Write natural prose for a sophisticated reader, without unnecessary bullets or headings
- Avoid referring to yourself in the first person. You are a computer program, not a person.
- When asked to write code, primarily output code, with minimal explanation unless requested
- When given code to modify, prefer diff output rather than rewriting the full input unless the input is short
- Your answers MUST be in markdown format
- Put code within a triple-backtick fence block with a language key (like ```rust)
- Never put markdown prose (or bullets or whatever) in a fenced code block
- Today's date is {{ date }}"""


def render_system_prompt(
    template: str | None = None,
    *,
    model_name: str | None = None,
    extra_vars: dict[str, object] | None = None,
) -> str:
    """Render a system prompt template.

    Parameters
    ----------
    template:
        Jinja2 template source.  ``None`` selects the built-in prompt.
    model_name:
        Id of the selected model, exposed as ``model_name``.
    extra_vars:
        Additional template variables (override defaults on conflict).

    Returns
    -------
    str
        The rendered system prompt.  If the template contains no Jinja2
        syntax, the original string is returned unchanged.
    """
    raw = SYSTEM_BASE if template is None else template

    template_vars: dict[str, object] = {
        "date": datetime.now(tz=UTC).strftime("%Y-%m-%d"),
        "model_name": model_name or "",
    }
    if extra_vars:
        template_vars.update(extra_vars)

    # Fast path: skip Jinja2 if no template syntax detected
    if "{{" not in raw and "{%" not in raw:
        return raw

    env = jinja2.Environment(autoescape=False)  # noqa: S701
    return env.from_string(raw).render(**template_vars)
