"""Contexts handed to exception catchers.

``WebHandlerContext`` records where in the pipeline a failure happened.
``WebExceptionContext`` wraps it for one catcher invocation and lets the
catcher choose how the error response goes out.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flurry.handlers.refs import HandlerRef


@dataclass(frozen=True, slots=True)
class WebHandlerContext:
    """Where the failing work was happening.

    Attributes:
        phase: Pipeline stage: ``"template"``, ``"json"``, ``"action"``,
            ``"resource"``.
        ref: The handler being run when the error was raised, if known.
    """

    phase: str
    ref: HandlerRef | None = None


class WebExceptionContext:
    """Exception-scoped context for a single catcher call.

    The catcher writes its output to ``rc.writer`` as usual; ``status``
    and ``content_type`` control the response the ASGI handler sends.
    """

    __slots__ = ("content_type", "handler_context", "status")

    def __init__(self, handler_context: WebHandlerContext) -> None:
        self.handler_context = handler_context
        self.status: int = 500
        self.content_type: str = "text/html; charset=utf-8"

    def __repr__(self) -> str:
        return f"<WebExceptionContext phase={self.handler_context.phase!r} status={self.status}>"
