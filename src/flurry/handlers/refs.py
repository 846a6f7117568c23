"""Handler references: one tagged variant per handler role.

Each ref wraps a user callable plus the key it was registered under and
exposes a single ``invoke`` capability. Refs are created during app
setup, owned by the ``HandlerRegistry`` and never copied.
"""

from __future__ import annotations

import enum
import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from flurry._internal.invoke import invoke
from flurry._internal.types import Handler
from flurry.handlers.resolve import build_kwargs

if TYPE_CHECKING:
    from flurry.context import RequestContext
    from flurry.exceptions import WebExceptionContext


class HandlerKind(enum.Enum):
    """The role a handler plays in the dispatch pipeline."""

    ACTION = "action"
    MODEL = "model"
    RESOURCE = "resource"
    CATCHER = "catcher"
    TEMPLATE_METHOD = "template_method"


def _name_of(func: Handler) -> str:
    return getattr(func, "__qualname__", None) or repr(func)


@dataclass(frozen=True, slots=True)
class ActionHandlerRef:
    """An action handler, looked up by name. Its return value is the payload."""

    name: str
    func: Handler

    kind = HandlerKind.ACTION

    async def invoke(self, rc: RequestContext) -> Any:
        return await invoke(self.func, **build_kwargs(self.func, rc))

    def __str__(self) -> str:
        return f"action {self.name!r} -> {_name_of(self.func)}"


@dataclass(frozen=True, slots=True)
class ModelHandlerRef:
    """A model handler registered at an exact path or under a glob pattern.

    The handler contributes to ``rc.model`` either by mutating the
    ``model`` argument or by returning a mapping, which is merged in.
    """

    key: str
    func: Handler
    matches: bool = False

    kind = HandlerKind.MODEL

    async def invoke(self, rc: RequestContext) -> None:
        result = await invoke(self.func, **build_kwargs(self.func, rc))
        if isinstance(result, Mapping):
            rc.model.update(result)

    def __str__(self) -> str:
        label = "matches" if self.matches else "path"
        return f"model {label} {self.key!r} -> {_name_of(self.func)}"


@dataclass(frozen=True, slots=True)
class ResourceHandlerRef:
    """A resource handler. Writes output itself, bypassing rendering.

    A ``str`` or ``bytes`` return value is written to ``rc.writer`` as a
    convenience.
    """

    path: str
    func: Handler

    kind = HandlerKind.RESOURCE

    async def invoke(self, rc: RequestContext) -> None:
        result = await invoke(self.func, **build_kwargs(self.func, rc))
        if isinstance(result, bytes):
            result = result.decode("utf-8")
        if isinstance(result, str):
            rc.writer.write(result)

    def __str__(self) -> str:
        return f"resource {self.path!r} -> {_name_of(self.func)}"


@dataclass(frozen=True, slots=True)
class ExceptionCatcherRef:
    """A catcher for one exact exception type."""

    exc_type: type[BaseException]
    func: Handler

    kind = HandlerKind.CATCHER

    async def invoke(
        self,
        exc: BaseException,
        exception_context: WebExceptionContext,
        rc: RequestContext,
    ) -> None:
        extras = {"exc": exc, "exception_context": exception_context}
        await invoke(self.func, **build_kwargs(self.func, rc, extras))

    def __str__(self) -> str:
        return f"catcher {self.exc_type.__name__} -> {_name_of(self.func)}"


@dataclass(frozen=True, slots=True)
class TemplateMethodHandlerRef:
    """A function callable from templates by name.

    The template call's arguments arrive as the ``args`` parameter.
    Templates render synchronously, so the handler must be a plain ``def``.
    """

    name: str
    func: Handler

    kind = HandlerKind.TEMPLATE_METHOD

    def invoke(self, rc: RequestContext, args: tuple[Any, ...] = ()) -> Any:
        result = self.func(**build_kwargs(self.func, rc, {"args": list(args)}))
        if inspect.isawaitable(result):
            close = getattr(result, "close", None)
            if close is not None:
                close()
            msg = f"Template method {self.name!r} must be synchronous"
            raise TypeError(msg)
        return result

    def __str__(self) -> str:
        return f"template method {self.name!r} -> {_name_of(self.func)}"


HandlerRef = (
    ActionHandlerRef
    | ModelHandlerRef
    | ResourceHandlerRef
    | ExceptionCatcherRef
    | TemplateMethodHandlerRef
)
