"""Built-in flurry template filters.

Auto-registered on every flurry kida Environment, alongside kida's own.
"""

import html
from typing import Any
from urllib.parse import urlencode

from kida.template import Markup

from flurry.rendering.json import JsonRenderer

_json = JsonRenderer()


def attr(value: Any, name: str) -> str | Markup:
    """Output an HTML attribute when value is truthy, else empty string.

    Example:
        <li{{ css_class | attr("class") }}>
        → <li class="active">   (when css_class is "active")
        → <li>                  (when css_class is None or "")
    """
    if not value:
        return ""
    return Markup(f' {name}="{html.escape(str(value))}"')


def qs(base: str, **params: Any) -> str:
    """Append query-string parameters to a URL path, skipping falsy values.

    Example:
        {{ "/users" | qs(page=page, q=search) }}
        → "/users?page=2"   (when search is "")
    """
    filtered = {k: v for k, v in params.items() if v}
    if not filtered:
        return base
    sep = "&" if "?" in base else "?"
    return f"{base}{sep}{urlencode(filtered)}"


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    """Pick the singular or plural form for *count*."""
    if count == 1:
        return singular
    return plural if plural is not None else f"{singular}s"


def to_json(value: Any) -> Markup:
    """Serialize *value* for embedding in an HTML attribute or script tag."""
    return Markup(html.escape(_json.dumps(value)))


BUILTIN_FILTERS: dict[str, Any] = {
    "attr": attr,
    "pluralize": pluralize,
    "qs": qs,
    "to_json": to_json,
}
