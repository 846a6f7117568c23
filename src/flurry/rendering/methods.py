"""Template methods: registered handlers callable from kida templates.

A ``TemplateMethodProxy`` is installed as a kida global for each
``TemplateMethodHandlerRef``. When a template calls it, the proxy finds
the current request context, exposes the call's arguments under a
reserved attribute for exactly that call, and invokes the handler.

Failures are logged and render as ``None`` so one broken helper does
not take down the whole page. This differs from every other handler
kind, whose failures propagate.
"""

import logging
from typing import Any

from flurry.context import get_request_context
from flurry.handlers.refs import TemplateMethodHandlerRef

logger = logging.getLogger("flurry.rendering")

TEMPLATE_METHOD_ARGUMENTS = "templateMethodArguments"
"""Attribute holding the raw argument list during a template-method call."""


class TemplateMethodProxy:
    """Callable kida global that forwards to a template-method handler."""

    __slots__ = ("name", "ref")

    def __init__(self, name: str, ref: TemplateMethodHandlerRef) -> None:
        self.name = name
        self.ref = ref

    def __repr__(self) -> str:
        return f"<TemplateMethodProxy {self.name!r}>"

    def __call__(self, *args: Any) -> Any:
        rc = get_request_context()
        with rc.attribute(TEMPLATE_METHOD_ARGUMENTS, list(args)):
            try:
                return self.ref.invoke(rc, args)
            except Exception:
                logger.exception("Template method %r failed", self.name)
                return None
