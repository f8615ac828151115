from __future__ import annotations

import re
from typing import Any

import jinja2

_JINJA_RE = re.compile(r"{[{%]")

_env = jinja2.Environment(undefined=jinja2.StrictUndefined, autoescape=False, keep_trailing_newline=True)


def looks_like_jinja(text: str) -> bool:
    return bool(_JINJA_RE.search(text))


def render_value(value: Any, context: dict[str, Any]) -> Any:
    """Render ``{{ var }}`` references in strings, recursing into lists and mappings."""
    if isinstance(value, str):
        if not looks_like_jinja(value):
            return value
        return _env.from_string(value).render(**context)
    if isinstance(value, dict):
        return {k: render_value(v, context) for k, v in value.items()}
    if isinstance(value, list):
        return [render_value(v, context) for v in value]
    return value


def render_spec(data: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
    # Keys starting with "_" are loader bookkeeping and are passed through.
    return {
        key: value if key.startswith("_") else render_value(value, context)
        for key, value in data.items()
    }
