"""Per-request dispatch state.

Provides:
- ``RequestContext``: the mutable state one request carries through the
  dispatcher (resource path, attribute bag, model, frame path, action
  response, writer).
- ``rc_var``: the current ``RequestContext`` for this task/thread, so
  template methods can reach it without threading it through kida.

A context is created at request start and dropped at request end; it is
never reused or shared across requests.

Thread safety:
    ``ContextVar`` is task-local under asyncio and thread-local under
    free-threading. No locks needed.
"""

from __future__ import annotations

import io
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from flurry.http.query import QueryParams

if TYPE_CHECKING:
    from flurry._internal.types import Writer
    from flurry.actions import WebActionResponse
    from flurry.exceptions import WebExceptionContext
    from flurry.http.request import Request

_MISSING = object()


def split_path(path: str) -> tuple[str, ...]:
    """Split a resource path into its non-empty segments.

    Examples::

        "/a/b/c"  -> ("a", "b", "c")
        "/a//b/"  -> ("a", "b")
        "/"       -> ()
    """
    return tuple(part for part in path.split("/") if part)


class RequestContext:
    """Mutable state for a single request.

    Mutated only by the dispatcher and the handlers it invokes.

    Usage::

        rc = RequestContext("/admin/users")
        rc.resource_paths       # ("admin", "users")
        rc.model["title"] = "Users"
        rc.set_frame_path("/admin/frame")
    """

    __slots__ = (
        "_frame_path",
        "attributes",
        "model",
        "params",
        "request",
        "resource_path",
        "resource_paths",
        "web_action_response",
        "web_exception_context",
        "writer",
    )

    def __init__(
        self,
        resource_path: str,
        *,
        request: Request | None = None,
        writer: Writer | None = None,
        params: QueryParams | None = None,
    ) -> None:
        self.resource_path: str = resource_path
        self.resource_paths: tuple[str, ...] = split_path(resource_path)
        self.request: Request | None = request
        self.writer: Writer = writer if writer is not None else io.StringIO()
        # Body parameters (form or JSON) pre-read by the ASGI handler
        self.params: QueryParams = params if params is not None else QueryParams()
        self.attributes: dict[str, Any] = {}
        self.model: dict[str, Any] = {}
        self.web_action_response: WebActionResponse | None = None
        self.web_exception_context: WebExceptionContext | None = None
        self._frame_path: str | None = None

    def __repr__(self) -> str:
        return f"<RequestContext {self.resource_path!r}>"

    # -- Attribute bag --

    def set_attribute(self, name: str, value: Any) -> None:
        self.attributes[name] = value

    def get_attribute(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def remove_attribute(self, name: str) -> Any:
        """Remove *name* and return its value (``None`` if it was not set)."""
        return self.attributes.pop(name, None)

    @contextmanager
    def attribute(self, name: str, value: Any) -> Iterator[None]:
        """Set an attribute for the duration of a ``with`` block.

        The attribute is removed on exit, also when the block raises.
        """
        self.attributes[name] = value
        try:
            yield
        finally:
            self.attributes.pop(name, None)

    # -- Frame path --

    def set_frame_path(self, path: str) -> None:
        """Override which template renders this request."""
        self._frame_path = path

    def pop_frame_path(self) -> str | None:
        """Return the frame path override and clear it.

        One-shot: a second call returns ``None``.
        """
        path, self._frame_path = self._frame_path, None
        return path

    # -- Request parameters --

    def param(self, name: str, default: Any = None) -> Any:
        """Read a request parameter: body params first, then the query string."""
        value = self.params.get(name, _MISSING)  # type: ignore[arg-type]
        if value is not _MISSING:
            return value
        if self.request is not None:
            return self.request.query.get(name, default)
        return default

    @property
    def output(self) -> str:
        """Everything written so far, when the writer is a ``StringIO``."""
        getvalue = getattr(self.writer, "getvalue", None)
        if getvalue is None:
            msg = f"Writer {type(self.writer).__name__} does not expose its contents"
            raise TypeError(msg)
        return getvalue()


# -- Current context --

rc_var: ContextVar[RequestContext] = ContextVar("flurry_request_context")
"""The current request context. Set by the ASGI handler before dispatch."""


def get_request_context() -> RequestContext:
    """Return the current request context.

    Raises ``LookupError`` if called outside a request.
    """
    return rc_var.get()
