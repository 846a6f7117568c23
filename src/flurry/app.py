"""Flurry application class.

Mutable during setup (handler registration, leaf paths, filters, hooks).
Frozen when ``__call__()`` first runs: the handler registry is sealed,
the kida environment is built, and the dispatcher is initialized.
"""

import inspect
import threading
from collections.abc import Callable
from typing import Any

from kida import Environment

from flurry._internal.asgi import Receive, Scope, Send
from flurry._internal.types import Handler
from flurry.config import AppConfig
from flurry.dispatch import Dispatcher
from flurry.handlers import (
    ActionHandlerRef,
    ExceptionCatcherRef,
    HandlerKind,
    HandlerRegistry,
    ModelHandlerRef,
    ResourceHandlerRef,
    TemplateMethodHandlerRef,
)
from flurry.lifecycle import Initializable, WebApplicationLifecycle
from flurry.rendering.json import JsonRenderer
from flurry.rendering.templates import TemplateRenderer
from flurry.server.handler import handle_request


class App:
    """The flurry application.

    Usage::

        app = App(AppConfig(template_dir="views"))

        @app.web_model("/")
        def site(model):
            model["site"] = "Example"

        @app.web_model(matches="/admin/*")
        def admin_nav():
            return {"nav": ["users", "groups"]}

        @app.web_action("save")
        async def save(rc):
            ...

    Thread safety:
        The setup phase is single-threaded (decorators at import time).
        The freeze transition uses a Lock + double-check so exactly one
        thread builds the dispatcher, even when several ASGI workers call
        ``__call__()`` concurrently on first request.
    """

    __slots__ = (
        "_custom_kida_env",
        "_dispatcher",
        "_freeze_lock",
        "_frozen",
        "_lifecycle",
        "_persistence",
        "_registry",
        "_shutdown_hooks",
        "_startup_hooks",
        "_template_filters",
        "_template_globals",
        "config",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        kida_env: Environment | None = None,
    ) -> None:
        self.config: AppConfig = config or AppConfig()
        self._registry: HandlerRegistry = HandlerRegistry()
        self._template_filters: dict[str, Callable[..., Any]] = {}
        self._template_globals: dict[str, Any] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._lifecycle: WebApplicationLifecycle | None = None
        self._persistence: Initializable | None = None
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()
        self._custom_kida_env: Environment | None = kida_env

        # Compiled state, set during _freeze()
        self._dispatcher: Dispatcher | None = None

    # -- Handler registration --

    def web_model(
        self,
        path: str | None = None,
        *,
        matches: str | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register a model handler for an exact path or a glob pattern.

        Exactly one of *path* and *matches* must be given. Every handler
        registered at a path runs, in registration order.
        """
        if (path is None) == (matches is None):
            msg = "web_model() takes exactly one of a path or matches=pattern"
            raise TypeError(msg)

        def decorator(func: Handler) -> Handler:
            self._check_not_frozen()
            if matches is not None:
                ref = ModelHandlerRef(matches, func, matches=True)
                self._registry.register(HandlerKind.MODEL, matches, ref)
            else:
                assert path is not None
                self._registry.register(HandlerKind.MODEL, path, ModelHandlerRef(path, func))
            return func

        return decorator

    def web_action(self, name: str | None = None) -> Callable[[Handler], Handler]:
        """Register a web action under *name* (default: the function name)."""

        def decorator(func: Handler) -> Handler:
            self._check_not_frozen()
            action_name = name or func.__name__
            self._registry.register(
                HandlerKind.ACTION, action_name, ActionHandlerRef(action_name, func)
            )
            return func

        return decorator

    def web_resource(self, path: str) -> Callable[[Handler], Handler]:
        """Register a handler that writes the whole response for *path*."""

        def decorator(func: Handler) -> Handler:
            self._check_not_frozen()
            self._registry.register(HandlerKind.RESOURCE, path, ResourceHandlerRef(path, func))
            return func

        return decorator

    def exception_catcher(
        self,
        exc_type: type[BaseException],
    ) -> Callable[[Handler], Handler]:
        """Register a catcher for exactly *exc_type* (subclasses are not caught)."""

        def decorator(func: Handler) -> Handler:
            self._check_not_frozen()
            self._registry.register(
                HandlerKind.CATCHER, exc_type, ExceptionCatcherRef(exc_type, func)
            )
            return func

        return decorator

    def template_method(self, name: str | None = None) -> Callable[[Handler], Handler]:
        """Expose a handler to templates as a callable global.

        Template calls pass their positional arguments as ``args``::

            @app.template_method("user_link")
            def user_link(args, rc):
                return f"<a href='/users/{args[0]}'>{args[0]}</a>"
        """

        def decorator(func: Handler) -> Handler:
            self._check_not_frozen()
            method_name = name or func.__name__
            self._registry.register(
                HandlerKind.TEMPLATE_METHOD,
                method_name,
                TemplateMethodHandlerRef(method_name, func),
            )
            return func

        return decorator

    def leaf_path(self, prefix: str) -> None:
        """Render every path under *prefix* with the prefix's template.

        ``app.leaf_path("/docs/")`` renders ``/docs/intro`` with ``docs.html``.
        Prefixes are tried in registration order.
        """
        self._check_not_frozen()
        self._registry.add_leaf_path(prefix)

    # -- Application collaborators --

    def lifecycle(self, obj: WebApplicationLifecycle) -> WebApplicationLifecycle:
        """Set the object whose ``init()``/``shutdown()`` bracket the app's life."""
        self._check_not_frozen()
        self._lifecycle = obj
        return obj

    def persistence(self, obj: Initializable) -> Initializable:
        """Set the persistence layer, initialized before anything else."""
        self._check_not_frozen()
        self._persistence = obj
        return obj

    # -- Template integration --

    def template_filter(
        self,
        name: str | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a kida template filter."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._check_not_frozen()
            self._template_filters[name or func.__name__] = func
            return func

        return decorator

    def template_global(
        self,
        name: str | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a kida template global."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._check_not_frozen()
            self._template_globals[name or func.__name__] = func
            return func

        return decorator

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync startup hook via decorator.

        Hooks run in registration order during ASGI lifespan startup,
        after the dispatcher is initialized.
        """
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync shutdown hook via decorator.

        Hooks run in registration order during ASGI lifespan shutdown,
        before the lifecycle object's ``shutdown()``.
        """
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- Compiled state --

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def dispatcher(self) -> Dispatcher:
        """The dispatcher, building it on first access."""
        self._ensure_frozen()
        assert self._dispatcher is not None
        return self._dispatcher

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point.

        Handles lifespan scopes directly, then delegates HTTP scopes to
        the request handler pipeline.
        """
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        self._ensure_frozen()
        assert self._dispatcher is not None

        await handle_request(
            scope,
            receive,
            send,
            dispatcher=self._dispatcher,
            config=self.config,
        )

    async def _handle_lifespan(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        """Run the ASGI lifespan protocol.

        Freezes the app at startup (before first HTTP request), then
        runs registered startup/shutdown hooks and signals completion
        back to the server.
        """
        self._ensure_frozen()
        assert self._dispatcher is not None

        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                if not self._dispatcher.initialized:
                    await send(
                        {
                            "type": "lifespan.startup.failed",
                            "message": "Application init failed; see the log for details",
                        }
                    )
                    return
                try:
                    await self.run_startup_hooks()
                    await send({"type": "lifespan.startup.complete"})
                except Exception as exc:
                    await send(
                        {
                            "type": "lifespan.startup.failed",
                            "message": str(exc),
                        }
                    )
                    return

            elif msg_type == "lifespan.shutdown":
                await self.run_shutdown_hooks()
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def run_startup_hooks(self) -> None:
        for hook in self._startup_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

    async def run_shutdown_hooks(self) -> None:
        """Run shutdown hooks, then the lifecycle object's ``shutdown()``."""
        for hook in self._shutdown_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result
        if self._dispatcher is not None:
            self._dispatcher.shutdown()

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Build the dispatcher and run its one-time init.

        MUST only be called while holding _freeze_lock. An init failure
        does not raise: the dispatcher stays uninitialized and requests
        are answered with 503.
        """
        template_renderer = TemplateRenderer(
            self.config,
            env=self._custom_kida_env,
            filters=self._template_filters,
            globals_=self._template_globals,
        )
        json_renderer = JsonRenderer(
            indent=self.config.json_indent,
            sort_keys=self.config.json_sort_keys,
        )
        dispatcher = Dispatcher(
            self._registry,
            template_renderer,
            json_renderer,
            lifecycle=self._lifecycle,
            persistence=self._persistence,
        )
        self._frozen = True
        self._dispatcher = dispatcher
        dispatcher.init()

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register handlers and filters before serving."
            )
            raise RuntimeError(msg)
