"""flurry exception hierarchy.

Shared across the registry, dispatcher, and ASGI handler so every module
raises and catches the same types.
"""

from dataclasses import dataclass


class FlurryError(Exception):
    """Base for all flurry-specific errors."""


class ConfigurationError(FlurryError):
    """Raised when app configuration is invalid.

    Typically caught during ``App._freeze()`` at startup.
    """


class NotInitializedError(FlurryError):
    """The dispatcher was asked to serve before a successful ``init()``."""

    def __init__(self, detail: str = "Application is not initialized") -> None:
        super().__init__(detail)


class NoWebAction(FlurryError):  # noqa: N818
    """No action handler is registered under the requested name."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"No WebAction registered for {action!r}")


class NoWebResourceHandler(FlurryError):  # noqa: N818
    """No resource handler is registered for the requested path."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"No WebResourceHandler for {path!r}")


@dataclass(frozen=True, slots=True)
class HTTPError(FlurryError):
    """An error that maps directly to an HTTP status code.

    Raised by handlers to choose the response status. The ASGI handler
    turns these into responses after exception catchers had their turn.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404: nothing can render the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)
