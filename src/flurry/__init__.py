"""Flurry: a handler-registry web framework rendered through kida.

Pages are composed from model handlers that cascade down the request
path, then rendered by a kida template chosen from that path. Paths
ending in ``.json`` return the same model as JSON.

Basic usage::

    from flurry import App

    app = App()

    @app.web_model("/")
    def site(model):
        model["title"] = "Home"

    @app.web_model("/users")
    async def users(model):
        model["users"] = await store.list_users()

Serve ``app`` with any ASGI server.
"""

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "ConfigurationError",
    "FlurryError",
    "HTTPError",
    "NoWebAction",
    "NoWebResourceHandler",
    "NotFound",
    "NotInitializedError",
    "Request",
    "RequestContext",
    "Response",
    "WebActionResponse",
    "WebExceptionContext",
    "get_request_context",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import flurry`` fast while providing a clean top-level API.
    """
    if name == "App":
        from flurry.app import App

        return App

    if name == "AppConfig":
        from flurry.config import AppConfig

        return AppConfig

    if name == "Request":
        from flurry.http.request import Request

        return Request

    if name == "Response":
        from flurry.http.response import Response

        return Response

    if name in ("RequestContext", "get_request_context"):
        from flurry import context as _ctx

        return getattr(_ctx, name)

    if name == "WebActionResponse":
        from flurry.actions import WebActionResponse

        return WebActionResponse

    if name == "WebExceptionContext":
        from flurry.exceptions import WebExceptionContext

        return WebExceptionContext

    if name in (
        "ConfigurationError",
        "FlurryError",
        "HTTPError",
        "NoWebAction",
        "NoWebResourceHandler",
        "NotFound",
        "NotInitializedError",
    ):
        from flurry import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
