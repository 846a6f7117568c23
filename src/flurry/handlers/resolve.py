"""Handler argument resolution.

Handlers declare what they need through their signature; the dispatcher
never passes positional arguments. Resolution priority for each
parameter:

1. ``rc``: the ``RequestContext`` (by name or annotation)
2. ``model``: the request's model dict (by name)
3. ``request``: the ``Request`` object (by name or annotation)
4. Call extras: supplied by the invoking ref (``exc``, ``exception_context``,
   ``args``), matched by name, or by annotation for class-typed extras
5. Request parameters: body params, then query string, with type coercion

Parameters that resolve to nothing are left out so their Python defaults
apply.

Coercion follows the parameter annotation. ``bool`` accepts
``true``/``1``/``yes``/``on`` (case-insensitive) as true and anything else
as false; JSON booleans pass through. A value the annotation cannot
convert (``page=abc`` for ``page: int``) is passed through unchanged, and
the handler decides what to do with it.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Mapping
from typing import Any

from flurry.context import RequestContext
from flurry.http.request import Request

_MISSING = object()
_TRUTHY = frozenset({"true", "1", "yes", "on"})


@functools.cache
def _signature(handler: Callable[..., Any]) -> inspect.Signature:
    return inspect.signature(handler, eval_str=True)


def _coerce(param: inspect.Parameter, value: Any) -> Any:
    annotation = param.annotation
    if annotation is inspect.Parameter.empty or not isinstance(annotation, type):
        return value
    if annotation is bool:
        if isinstance(value, str):
            return value.lower() in _TRUTHY
        return bool(value)
    if isinstance(value, annotation):
        return value
    try:
        return annotation(value)
    except (ValueError, TypeError):
        return value


def build_kwargs(
    handler: Callable[..., Any],
    rc: RequestContext,
    extras: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build keyword arguments for *handler* from *rc* and *extras*.

    Args:
        handler: The user-defined handler function.
        rc: The current request context.
        extras: Values specific to this invocation, keyed by parameter name.

    Returns:
        A dict of keyword arguments ready to pass to *handler*.
    """
    extras = extras or {}
    kwargs: dict[str, Any] = {}

    for name, param in _signature(handler).parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        annotation = param.annotation
        if name == "rc" or annotation is RequestContext:
            kwargs[name] = rc
        elif name == "model":
            kwargs[name] = rc.model
        elif name == "request" or annotation is Request:
            kwargs[name] = rc.request
        elif name in extras:
            kwargs[name] = extras[name]
        elif (extra := _extra_by_annotation(annotation, extras)) is not _MISSING:
            kwargs[name] = extra
        else:
            value = rc.param(name, _MISSING)
            if value is not _MISSING:
                kwargs[name] = _coerce(param, value)

    return kwargs


def _extra_by_annotation(annotation: Any, extras: Mapping[str, Any]) -> Any:
    if annotation is inspect.Parameter.empty or not isinstance(annotation, type):
        return _MISSING
    # Plain builtins (str, list, ...) are request parameters, not extras
    if annotation.__module__ == "builtins" and not issubclass(annotation, BaseException):
        return _MISSING
    for value in extras.values():
        if isinstance(value, annotation):
            return value
    return _MISSING
